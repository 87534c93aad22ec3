from pydantic import BaseModel, EmailStr, Field, AliasChoices, ConfigDict, model_validator
from typing import Optional, Literal, List
from datetime import date, time, datetime

Weekday = Literal["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
PHONE_PATTERN = r"^[\+]?[0-9\s\-\(\)]{10,}$"

DOCTOR_REQUIRED_FIELDS = ("specialty", "license_number", "experience_years", "consultation_fee")
MANAGER_REQUIRED_FIELDS = ("department", "position")


class TokenData(BaseModel):
    id: int
    role: str


class LoginInput(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RegisterInput(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(min_length=6)
    phone: str = Field(pattern=PHONE_PATTERN)
    role: Literal["doctor", "patient"]

    specialty: Optional[str] = None
    license_number: Optional[str] = None
    experience_years: Optional[int] = Field(default=None, ge=0)
    consultation_fee: Optional[float] = Field(default=None, ge=0)
    bio: Optional[str] = None

    date_of_birth: Optional[date] = None
    gender: Optional[str] = None
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    nationality: Literal["local", "international"] = "local"
    passport_number: Optional[str] = None
    passport_expiry: Optional[date] = None

    certificate_names: List[str] = []
    certificate_authorities: List[str] = []
    certificate_issue_dates: List[date] = []
    certificate_expiry_dates: List[Optional[date]] = []

    @model_validator(mode="after")
    def check_role_fields(self):
        if self.role == "doctor":
            missing = [f for f in DOCTOR_REQUIRED_FIELDS if getattr(self, f) in (None, "")]
            if missing:
                raise ValueError("Missing doctor fields: " + ", ".join(missing))
        return self


class UserCreate(RegisterInput):
    role: Literal["admin", "doctor", "patient", "manager"]
    status: Literal["active", "inactive", "suspended"] = "active"
    department: Optional[str] = None
    position: Optional[str] = None
    employee_id: Optional[str] = None
    hire_date: Optional[date] = None

    @model_validator(mode="after")
    def check_manager_fields(self):
        if self.role == "manager":
            missing = [f for f in MANAGER_REQUIRED_FIELDS if not getattr(self, f)]
            if missing:
                raise ValueError("Missing manager fields: " + ", ".join(missing))
        return self


class ManagerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(pattern=PHONE_PATTERN)
    password: str = Field(min_length=6)
    department: str = Field(min_length=1)
    position: str = Field(min_length=1)
    employee_id: Optional[str] = None
    hire_date: Optional[date] = None


class ManagerUpdate(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    department: Optional[str] = None
    position: Optional[str] = None
    employee_id: Optional[str] = None


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    specialty: Optional[str] = None
    bio: Optional[str] = None
    consultation_fee: Optional[float] = Field(default=None, ge=0)
    address: Optional[str] = None
    emergency_contact: Optional[str] = None
    medical_history: Optional[str] = None
    department: Optional[str] = None
    position: Optional[str] = None


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)


class UserUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class UserStatusUpdate(BaseModel):
    status: Literal["active", "inactive", "suspended"]


class RejectInput(BaseModel):
    reason: Optional[str] = None


class UserOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    email: EmailStr
    phone: Optional[str]
    role: str
    status: str
    created_at: Optional[datetime]


class ScheduleDay(BaseModel):
    day_of_week: Weekday = Field(validation_alias=AliasChoices("day_of_week", "day"))
    start_time: time
    end_time: time
    slot_duration: int = Field(default=30, gt=0)
    break_time: int = Field(default=15, ge=0)
    is_available: bool = True

    @model_validator(mode="before")
    @classmethod
    def lowercase_day(cls, data):
        if isinstance(data, dict):
            for key in ("day_of_week", "day"):
                if isinstance(data.get(key), str):
                    data = {**data, key: data[key].lower()}
        return data

    @model_validator(mode="after")
    def check_window(self):
        if self.start_time >= self.end_time:
            raise ValueError("end_time must be after start_time")
        return self


class WeeklySchedule(BaseModel):
    schedule: List[ScheduleDay]


class ScheduleOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    doctor_id: int
    day_of_week: str
    start_time: time
    end_time: time
    slot_duration: int
    break_time: int
    is_available: bool


class AppointmentInput(BaseModel):
    doctor_id: int
    appointment_date: date
    appointment_time: time
    reason: str = Field(min_length=1)
    notes: Optional[str] = None
    patient_id: Optional[int] = None


class AppointmentUpdate(BaseModel):
    reason: Optional[str] = Field(default=None, min_length=1)
    notes: Optional[str] = None


class PaymentInput(BaseModel):
    appointment_id: int
    payment_method: str = Field(min_length=1, max_length=50)


class PaymentOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    appointment_id: int
    patient_id: int
    amount: float
    payment_method: str
    status: str
    transaction_id: Optional[str]
    payment_date: Optional[datetime]
    verified_by: Optional[int]
    verified_at: Optional[datetime]


class PrescriptionMedicineInput(BaseModel):
    medicine_id: Optional[int] = None
    medicine_name: str = Field(min_length=1)
    dosage: Optional[str] = None
    frequency: Optional[str] = None
    duration: Optional[str] = None
    instructions: Optional[str] = None
    quantity: int = Field(default=1, ge=1)


class PrescriptionTestInput(BaseModel):
    test_id: Optional[int] = None
    test_name: str = Field(min_length=1)
    instructions: Optional[str] = None
    urgency: Literal["routine", "urgent", "stat"] = "routine"


class PrescriptionInput(BaseModel):
    patient_id: int
    diagnosis: str = Field(min_length=1)
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[date] = None
    appointment_id: Optional[int] = None
    medicines: List[PrescriptionMedicineInput] = []
    tests: List[PrescriptionTestInput] = []


class PrescriptionUpdate(BaseModel):
    diagnosis: Optional[str] = Field(default=None, min_length=1)
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    follow_up_date: Optional[date] = None
    status: Optional[Literal["active", "completed", "cancelled"]] = None
    medicines: Optional[List[PrescriptionMedicineInput]] = None
    tests: Optional[List[PrescriptionTestInput]] = None


class TemplateInput(BaseModel):
    template_name: str = Field(min_length=1)
    diagnosis: str = Field(min_length=1)
    symptoms: Optional[str] = None
    notes: Optional[str] = None
    medicines: List[PrescriptionMedicineInput] = []
    tests: List[PrescriptionTestInput] = []


class TemplateOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    template_name: str
    diagnosis: str
    symptoms: Optional[str]
    notes: Optional[str]
    medicines: list
    tests: list
    created_at: Optional[datetime]


class MedicineInput(BaseModel):
    name: str = Field(min_length=1)
    generic_name: str = Field(min_length=1)
    manufacturer: str = Field(min_length=1)
    dosage_form: str = Field(min_length=1)
    strength: str = Field(min_length=1)
    category: str = Field(min_length=1)
    price: float = Field(ge=0)
    description: Optional[str] = None
    side_effects: Optional[str] = None
    contraindications: Optional[str] = None
    stock_quantity: int = Field(default=0, ge=0)


class MedicineUpdate(MedicineInput):
    is_active: bool = True


class MedicineOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    name: str
    generic_name: str
    manufacturer: str
    dosage_form: str
    strength: str
    category: str
    description: Optional[str]
    side_effects: Optional[str]
    contraindications: Optional[str]
    price: float
    stock_quantity: int
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class PathologyTestInput(BaseModel):
    test_name: str = Field(min_length=1)
    test_code: str = Field(min_length=1)
    category: str = Field(min_length=1)
    price: float = Field(ge=0)
    description: Optional[str] = None
    preparation_instructions: Optional[str] = None
    normal_values: Optional[str] = None
    duration_hours: float = Field(default=1, gt=0)


class PathologyTestUpdate(PathologyTestInput):
    is_active: bool = True


class PathologyTestOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    test_name: str
    test_code: str
    category: str
    description: Optional[str]
    preparation_instructions: Optional[str]
    normal_values: Optional[str]
    price: float
    duration_hours: float
    is_active: bool
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class CertificateOutput(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    doctor_id: int
    certificate_name: str
    issuing_authority: Optional[str]
    issue_date: Optional[date]
    expiry_date: Optional[date]
    file_path: Optional[str]
    file_name: Optional[str]
    status: str
    verified_by: Optional[int]
    verified_at: Optional[datetime]
    rejected_by: Optional[int]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
    created_at: Optional[datetime]
