"""
Database and API schemas for the DSS panel.

Each stored model corresponds to a MongoDB collection:
- employee
- registration
- administrator
- notification
"""
from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

StatusField = Literal["ass_dss", "bem", "mal", "absent"]
Severity = Literal["success", "error"]


class Shift(str, Enum):
    REGULAR = "7H-19H"
    SPECIAL = "6H"

    @property
    def other(self) -> "Shift":
        return Shift.SPECIAL if self is Shift.REGULAR else Shift.REGULAR


class StoredModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(alias="_id")


class Employee(StoredModel):
    name: str
    matricula: str
    ass_dss: bool = False
    bem: bool = False
    mal: bool = False
    absent: bool = False
    time: Optional[datetime] = None
    shift: Shift = Shift.REGULAR


class ManualRegistration(StoredModel):
    matricula: str
    subject: str
    shift: Shift


class Administrator(StoredModel):
    email: EmailStr
    hashed_password: str


class Notification(BaseModel):
    kind: str = "unwell_alert"
    recipient: str
    title: str
    body: str
    created_at: Optional[datetime] = None
    sent_at: Optional[datetime] = None


# Request / response bodies

class EmployeeCreate(BaseModel):
    name: str = Field(..., min_length=1)
    matricula: str = Field(..., min_length=1)


class StatusChange(BaseModel):
    field: StatusField
    confirm: bool = Field(False, description="Required when marking 'mal'")


class RegistrationRequest(BaseModel):
    matricula: str = ""
    subject: str = ""


class AdminLogin(BaseModel):
    email: EmailStr
    password: str


class Tokens(BaseModel):
    access_token: str
    token_type: str = "bearer"


class Message(BaseModel):
    ok: bool = True
    message: str
    type: Severity = "success"


class PanelStats(BaseModel):
    bem: int = 0
    mal: int = 0
    absent: int = 0
    total: int = 0


class EmployeeLine(BaseModel):
    name: str
    matricula: str


class RegistrationLine(BaseModel):
    matricula: str
    subject: str


class ShiftReport(BaseModel):
    shift: Shift
    ok: List[EmployeeLine] = []
    unwell: List[EmployeeLine] = []
    pending: List[EmployeeLine] = []
    registrations: List[RegistrationLine] = []

    @property
    def total(self) -> int:
        return len(self.ok) + len(self.unwell) + len(self.pending)


class DailyReport(BaseModel):
    report_date: str
    total: int
    present: int
    pending: int
    shifts: List[ShiftReport]
