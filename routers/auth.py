import logging
from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
import schemas, models, utils, oauth2, accounts, responses
from activity import record_activity
from database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(prefix= "/api/auth", tags=['Auth'])

@router.post("/login")
def user_login(credentials: schemas.LoginInput, request: Request, response: Response, db : Session = Depends(get_db)):
    user = db.query(models.User).filter(models.User.email == credentials.email).filter(models.User.status == "active").first()
    if not user or not utils.verify(credentials.password, user.password_hash):
        logger.warning("Failed login attempt email=%s", credentials.email)
        raise HTTPException(status_code=401, detail="Invalid credentials")
    access_token = oauth2.create_access_token({"user_id":user.id, "role": user.role})
    response.set_cookie(oauth2.TOKEN_COOKIE, access_token, httponly=True, samesite="lax", max_age=oauth2.EXPIRATION_TIME_IN_MINUTES * 60)
    record_activity(db, user.id, "login", {"role": user.role}, request)
    logger.info("User logged in user_id=%s role=%s", user.id, user.role)
    return responses.success({"user": accounts.profile(user), "token": access_token}, "Login successful")

@router.post("/register")
async def register(request: Request, db : Session = Depends(get_db)):
    payload, form = await utils.read_payload(request, schemas.RegisterInput)
    user = accounts.create_account(db, payload, files=form)
    record_activity(db, user.id, "register", {"role": user.role}, request)
    db.commit()
    logger.info("User registered user_id=%s role=%s email=%s", user.id, user.role, user.email)
    access_token = oauth2.create_access_token({"user_id": user.id, "role": user.role})
    return responses.success({"user_id": user.id, "token": access_token}, "Registration successful")

@router.post("/logout")
def user_logout(response: Response):
    response.delete_cookie(oauth2.TOKEN_COOKIE)
    return responses.success(None, "Logout successful")

@router.get("/profile")
def get_profile(current_user: models.User = Depends(oauth2.get_current_user)):
    return responses.success(accounts.profile(current_user))

@router.api_route("/update-profile", methods=["PUT", "POST"])
async def update_profile(request: Request, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    payload, form = await utils.read_payload(request, schemas.ProfileUpdate)
    accounts.update_profile(db, current_user, payload, form)
    record_activity(db, current_user.id, "update_profile", None, request)
    db.commit()
    logger.info("Profile updated user_id=%s", current_user.id)
    return responses.success(None, "Profile updated successfully")

@router.post("/change-password")
def change_password(passwords: schemas.PasswordChange, db: Session = Depends(get_db), current_user: models.User = Depends(oauth2.get_current_user)):
    if not utils.verify(passwords.current_password, current_user.password_hash):
        raise HTTPException(status_code=401, detail="Current password is incorrect")
    current_user.password_hash = utils.hash(passwords.new_password)
    db.commit()
    logger.info("Password changed user_id=%s", current_user.id)
    return responses.success(None, "Password changed successfully")
