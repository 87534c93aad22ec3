from database import Base
from sqlalchemy import Column, Integer, String, Text, ForeignKey, DATE, TIME, Enum, Boolean, Numeric, Float, JSON, UniqueConstraint, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sqlalchemy.sql.expression import text
from sqlalchemy.sql.sqltypes import TIMESTAMP

USER_ROLES = ("admin", "doctor", "patient", "manager")
USER_STATUSES = ("active", "inactive", "suspended")
WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
ACTIVE_APPOINTMENT_STATUSES = ("pending", "confirmed")

Money = Numeric(10, 2, asdecimal=False)


class User(Base):
    __tablename__ = 'users'
    id = Column(Integer, primary_key= True)
    name = Column(String(100), nullable= False)
    email = Column(String(150), nullable= False, unique= True)
    phone = Column(String(30))
    password_hash = Column(String, nullable=False)
    role = Column(Enum(*USER_ROLES, name="user_role", create_constraint=True), nullable=False)
    status = Column(Enum(*USER_STATUSES, name="user_status", create_constraint=True), nullable=False, default="active")
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())

    doctor = relationship("Doctor", back_populates="user", uselist=False, cascade="all, delete-orphan", foreign_keys="Doctor.user_id")
    patient = relationship("Patient", back_populates="user", uselist=False, cascade="all, delete-orphan")
    manager = relationship("Manager", back_populates="user", uselist=False, cascade="all, delete-orphan")


class Doctor(Base):
    __tablename__ = 'doctors'
    id = Column(Integer, primary_key= True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    specialty = Column(String(100), nullable= False)
    license_number = Column(String(50), nullable= False, unique=True)
    experience_years = Column(Integer, nullable=False, default=0)
    consultation_fee = Column(Money, nullable=False, default=0)
    bio = Column(Text)
    photo_path = Column(String)
    photo_filename = Column(String)
    status = Column(Enum("pending", "approved", "rejected", name="doctor_status", create_constraint=True), nullable=False, default="pending")
    approved_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    approved_at = Column(TIMESTAMP(timezone = True))
    rejected_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    rejected_at = Column(TIMESTAMP(timezone = True))
    rejection_reason = Column(Text)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())

    user = relationship("User", back_populates="doctor", foreign_keys=[user_id])
    certificates = relationship("Certificate", back_populates="doctor", cascade="all, delete-orphan")
    schedules = relationship("DoctorSchedule", back_populates="doctor", cascade="all, delete-orphan")
    appointments = relationship("Appointment", back_populates="doctor", cascade="all, delete-orphan")
    prescriptions = relationship("Prescription", back_populates="doctor", cascade="all, delete-orphan")
    templates = relationship("PrescriptionTemplate", back_populates="doctor", cascade="all, delete-orphan")


class Patient(Base):
    __tablename__ = 'patients'
    id = Column(Integer, primary_key= True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    date_of_birth = Column(DATE)
    gender = Column(String(20))
    address = Column(Text)
    emergency_contact = Column(String(100))
    medical_history = Column(Text)
    nationality = Column(Enum("local", "international", name="patient_nationality", create_constraint=True), nullable=False, default="local")
    passport_number = Column(String(50))
    passport_expiry = Column(DATE)
    passport_path = Column(String)
    passport_filename = Column(String)
    photo_path = Column(String)
    photo_filename = Column(String)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())

    user = relationship("User", back_populates="patient")
    appointments = relationship("Appointment", back_populates="patient", cascade="all, delete-orphan")
    prescriptions = relationship("Prescription", back_populates="patient", cascade="all, delete-orphan")


class Manager(Base):
    __tablename__ = 'managers'
    id = Column(Integer, primary_key= True)
    user_id = Column(Integer, ForeignKey('users.id', ondelete='CASCADE'), unique=True, nullable=False)
    department = Column(String(100), nullable=False)
    position = Column(String(100), nullable=False)
    employee_id = Column(String(50))
    hire_date = Column(DATE)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())

    user = relationship("User", back_populates="manager")


class Certificate(Base):
    __tablename__ = 'certificates'
    id = Column(Integer, primary_key= True)
    doctor_id = Column(Integer, ForeignKey('doctors.id', ondelete='CASCADE'), nullable=False)
    certificate_name = Column(String(150), nullable=False)
    issuing_authority = Column(String(150))
    issue_date = Column(DATE)
    expiry_date = Column(DATE)
    file_path = Column(String)
    file_name = Column(String)
    file_size = Column(Integer)
    file_type = Column(String(100))
    status = Column(Enum("pending", "verified", "rejected", name="certificate_status", create_constraint=True), nullable=False, default="pending")
    verified_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    verified_at = Column(TIMESTAMP(timezone = True))
    rejected_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    rejected_at = Column(TIMESTAMP(timezone = True))
    rejection_reason = Column(Text)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())

    doctor = relationship("Doctor", back_populates="certificates")


class DoctorSchedule(Base):
    __tablename__ = 'doctor_schedules'
    id = Column(Integer, primary_key= True)
    doctor_id = Column(Integer, ForeignKey('doctors.id', ondelete= 'CASCADE'), nullable=False)
    day_of_week = Column(Enum(*WEEKDAYS, name="weekday", create_constraint=True), nullable=False)
    start_time = Column(TIME, nullable=False)
    end_time = Column(TIME, nullable=False)
    slot_duration = Column(Integer, nullable=False, default=30)
    break_time = Column(Integer, nullable=False, default=15)
    is_available = Column(Boolean, nullable=False, default=True)
    __table_args__ = (UniqueConstraint("doctor_id", "day_of_week", name="uq_doctor_schedule_day"),)

    doctor = relationship("Doctor", back_populates="schedules")


class Appointment(Base):
    __tablename__ = "appointments"
    id = Column(Integer, primary_key= True)
    patient_id = Column(Integer, ForeignKey('patients.id', ondelete= 'CASCADE'), nullable=False)
    doctor_id = Column(Integer, ForeignKey('doctors.id', ondelete= 'CASCADE'), nullable=False)
    appointment_date = Column(DATE, nullable=False)
    appointment_time = Column(TIME, nullable=False)
    status = Column(Enum("pending", "confirmed", "completed", "cancelled", "rejected", name="appointment_status", create_constraint=True), nullable=False, default="pending")
    reason = Column(Text, nullable=False)
    notes = Column(Text)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())
    __table_args__ = (
        Index(
            "uq_active_appointment_slot", "doctor_id", "appointment_date", "appointment_time",
            unique=True,
            sqlite_where=text("status IN ('pending', 'confirmed')"),
            postgresql_where=text("status IN ('pending', 'confirmed')"),
        ),
    )

    patient = relationship("Patient", back_populates="appointments")
    doctor = relationship("Doctor", back_populates="appointments")
    payment = relationship("Payment", back_populates="appointment", uselist=False, cascade="all, delete-orphan")


class Payment(Base):
    __tablename__ = "payments"
    id = Column(Integer, primary_key= True)
    appointment_id = Column(Integer, ForeignKey('appointments.id', ondelete= 'CASCADE'), unique=True, nullable=False)
    patient_id = Column(Integer, ForeignKey('patients.id', ondelete= 'CASCADE'), nullable=False)
    amount = Column(Money, nullable=False)
    payment_method = Column(String(50), nullable=False, default="online")
    status = Column(Enum("pending", "completed", "failed", name="payment_status", create_constraint=True), nullable=False, default="pending")
    transaction_id = Column(String(30), unique=True)
    payment_date = Column(TIMESTAMP(timezone = True), server_default= func.now())
    verified_by = Column(Integer, ForeignKey('users.id', ondelete='SET NULL'))
    verified_at = Column(TIMESTAMP(timezone = True))

    appointment = relationship("Appointment", back_populates="payment")


class Prescription(Base):
    __tablename__ = "prescriptions"
    id = Column(Integer, primary_key= True)
    doctor_id = Column(Integer, ForeignKey('doctors.id', ondelete= 'CASCADE'), nullable=False)
    patient_id = Column(Integer, ForeignKey('patients.id', ondelete= 'CASCADE'), nullable=False)
    appointment_id = Column(Integer, ForeignKey('appointments.id', ondelete= 'SET NULL'))
    prescription_number = Column(String(20), nullable=False, unique=True)
    diagnosis = Column(Text, nullable=False)
    symptoms = Column(Text)
    notes = Column(Text)
    follow_up_date = Column(DATE)
    prescription_date = Column(TIMESTAMP(timezone = True), server_default= func.now())
    status = Column(Enum("active", "completed", "cancelled", name="prescription_status", create_constraint=True), nullable=False, default="active")
    pdf_path = Column(String)
    pdf_filename = Column(String)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())

    doctor = relationship("Doctor", back_populates="prescriptions")
    patient = relationship("Patient", back_populates="prescriptions")
    medicines = relationship("PrescriptionMedicine", back_populates="prescription", cascade="all, delete-orphan", order_by="PrescriptionMedicine.id")
    tests = relationship("PrescriptionTest", back_populates="prescription", cascade="all, delete-orphan", order_by="PrescriptionTest.id")


class PrescriptionMedicine(Base):
    __tablename__ = "prescription_medicines"
    id = Column(Integer, primary_key= True)
    prescription_id = Column(Integer, ForeignKey('prescriptions.id', ondelete= 'CASCADE'), nullable=False)
    medicine_id = Column(Integer, ForeignKey('medicines.id'))
    medicine_name = Column(String(150), nullable=False)
    dosage = Column(String(100))
    frequency = Column(String(100))
    duration = Column(String(100))
    instructions = Column(Text)
    quantity = Column(Integer, nullable=False, default=1)

    prescription = relationship("Prescription", back_populates="medicines")
    medicine = relationship("Medicine")


class PrescriptionTest(Base):
    __tablename__ = "prescription_tests"
    id = Column(Integer, primary_key= True)
    prescription_id = Column(Integer, ForeignKey('prescriptions.id', ondelete= 'CASCADE'), nullable=False)
    test_id = Column(Integer, ForeignKey('pathology_tests.id'))
    test_name = Column(String(150), nullable=False)
    instructions = Column(Text)
    urgency = Column(Enum("routine", "urgent", "stat", name="test_urgency", create_constraint=True), nullable=False, default="routine")

    prescription = relationship("Prescription", back_populates="tests")
    test = relationship("PathologyTest")


class Medicine(Base):
    __tablename__ = "medicines"
    id = Column(Integer, primary_key= True)
    name = Column(String(150), nullable=False)
    generic_name = Column(String(150), nullable=False)
    manufacturer = Column(String(150), nullable=False)
    dosage_form = Column(String(50), nullable=False)
    strength = Column(String(50), nullable=False)
    category = Column(String(100), nullable=False)
    description = Column(Text)
    side_effects = Column(Text)
    contraindications = Column(Text)
    price = Column(Money, nullable=False)
    stock_quantity = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())
    __table_args__ = (UniqueConstraint("name", "manufacturer", "strength", name="uq_medicine_identity"),)


class PathologyTest(Base):
    __tablename__ = "pathology_tests"
    id = Column(Integer, primary_key= True)
    test_name = Column(String(150), nullable=False)
    test_code = Column(String(30), nullable=False, unique=True)
    category = Column(String(100), nullable=False)
    description = Column(Text)
    preparation_instructions = Column(Text)
    normal_values = Column(Text)
    price = Column(Money, nullable=False)
    duration_hours = Column(Float, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
    updated_at = Column(TIMESTAMP(timezone = True), server_default= func.now(), onupdate= func.now())


class PrescriptionTemplate(Base):
    __tablename__ = "prescription_templates"
    id = Column(Integer, primary_key= True)
    doctor_id = Column(Integer, ForeignKey('doctors.id', ondelete= 'CASCADE'), nullable=False)
    template_name = Column(String(150), nullable=False)
    diagnosis = Column(Text, nullable=False)
    symptoms = Column(Text)
    notes = Column(Text)
    medicines = Column(JSON, nullable=False, default=list)
    tests = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())

    doctor = relationship("Doctor", back_populates="templates")


class ActivityLog(Base):
    __tablename__ = "activity_logs"
    id = Column(Integer, primary_key= True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    activity = Column(String(100), nullable=False)
    details = Column(JSON)
    ip_address = Column(String(45))
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())


class AuditLog(Base):
    __tablename__ = "audit_logs"
    id = Column(Integer, primary_key= True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    action = Column(String(50), nullable=False)
    table_name = Column(String(50), nullable=False)
    record_id = Column(Integer)
    old_values = Column(JSON)
    new_values = Column(JSON)
    created_at = Column(TIMESTAMP(timezone = True), server_default= func.now())
