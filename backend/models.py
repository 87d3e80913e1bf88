from pydantic import BaseModel, Field, EmailStr
from typing import Optional, List, Literal
from datetime import datetime

# ============================================
# DESIGNATIONS
# ============================================
DESIGNATIONS = ["JE", "AEE", "CE", "MD", "VIEWER", "ADMIN", "OPERATOR"]
PROGRESS_UPDATE_DESIGNATIONS = ["JE"]
TOGGLE_DESIGNATIONS = ["ADMIN", "AEE", "CE", "MD"]
PROJECT_CREATE_DESIGNATIONS = ["JE", "ADMIN"]

# ============================================
# USER MODELS
# ============================================
class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str
    designation: str = "VIEWER"

class UserResponse(BaseModel):
    user_id: str
    name: str
    email: str
    designation: str
    active_status: bool
    created_at: datetime
    updated_at: datetime

# ============================================
# SUPPORTING DOCUMENTS
# ============================================
class FileRef(BaseModel):
    """Reference to a file already stored by the upload service"""
    stored_name: str
    original_name: str
    retrieval_locator: str
    size_bytes: int = 0
    mime_type: Optional[str] = None
    category: Literal["image", "document"] = "document"
    uploaded_at: datetime = Field(default_factory=lambda: datetime.utcnow())

class BillDetails(BaseModel):
    bill_number: Optional[str] = None
    bill_date: Optional[datetime] = None
    bill_description: Optional[str] = None

# ============================================
# PROGRESS UPDATE REQUESTS
# ============================================
# Range and length checks are done by the ledger rules so that
# violations come back as rejection reasons, not schema errors.
class ProgressUpdateRequest(BaseModel):
    progress: Optional[float] = None
    remarks: Optional[str] = None
    supporting_documents: List[FileRef] = Field(default_factory=list)

class FinancialProgressUpdateRequest(BaseModel):
    new_bill_amount: Optional[float] = None
    remarks: Optional[str] = None
    bill_details: Optional[BillDetails] = None
    supporting_documents: List[FileRef] = Field(default_factory=list)

class CombinedProgressUpdateRequest(BaseModel):
    progress: Optional[float] = None
    new_bill_amount: Optional[float] = None
    remarks: Optional[str] = None
    bill_details: Optional[BillDetails] = None
    supporting_documents: List[FileRef] = Field(default_factory=list)

class ToggleRequest(BaseModel):
    enabled: bool

class ToggleAllRequest(BaseModel):
    progress_enabled: Optional[bool] = None
    financial_progress_enabled: Optional[bool] = None

# ============================================
# PROJECT MODEL
# ============================================
class ProjectCreate(BaseModel):
    project_id: str
    project_name: str
    work_value: float
    bill_submitted_amount: float = 0
    status: Optional[str] = None
    district: Optional[str] = None
    fund: Optional[str] = None
    type_of_work: Optional[str] = None
    nature_of_work: Optional[str] = None
    project_start_date: Optional[datetime] = None
    project_end_date: Optional[datetime] = None

# ============================================
# AUTH MODELS
# ============================================
class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int = 1800  # 30 minutes in seconds
    user: UserResponse

class LoginRequest(BaseModel):
    email: EmailStr
    password: str
