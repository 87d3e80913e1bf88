from fastapi import FastAPI, APIRouter, HTTPException, status, Depends
from dotenv import load_dotenv
from starlette.middleware.cors import CORSMiddleware
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import DuplicateKeyError
import os
import logging
from pathlib import Path
from datetime import datetime

# Import custom modules
from models import (
    UserCreate, UserResponse, Token, LoginRequest,
    ProjectCreate, DESIGNATIONS, PROJECT_CREATE_DESIGNATIONS
)
from auth import hash_password, verify_password, create_access_token, get_current_user
from audit_service import AuditService
from permissions import PermissionChecker
from progress_routes import create_progress_routes, serialize_doc, parse_object_id
from core.progress_ledger import ProjectAggregate

ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

# MongoDB connection (transactions require a replica set)
mongo_url = os.environ['MONGO_URL']
client = AsyncIOMotorClient(mongo_url)
db = client[os.environ['DB_NAME']]

# Initialize services
audit_service = AuditService(db)
permission_checker = PermissionChecker(db)

# Create the main app
app = FastAPI(
    title="Civil Works Progress Ledger",
    version="1.0.0",
    description="Physical and financial progress tracking for civil-works projects"
)

# Create router with /api prefix
api_router = APIRouter(prefix="/api")

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def user_response(user: dict) -> UserResponse:
    return UserResponse(
        user_id=str(user.get("_id", user.get("user_id"))),
        name=user["name"],
        email=user["email"],
        designation=user["designation"],
        active_status=user.get("active_status", False),
        created_at=user["created_at"],
        updated_at=user["updated_at"]
    )

# ============================================
# AUTHENTICATION ENDPOINTS
# ============================================

@api_router.post("/auth/register", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def register_user(user_data: UserCreate):
    """
    Register a new user.
    First user becomes ADMIN, subsequent users get their specified designation.
    """
    # Check if email already exists
    existing_user = await db.users.find_one({"email": user_data.email})
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered"
        )

    if user_data.designation not in DESIGNATIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid designation. Must be one of: {', '.join(DESIGNATIONS)}"
        )

    # Check if this is the first user
    user_count = await db.users.count_documents({})
    designation = "ADMIN" if user_count == 0 else user_data.designation

    user_dict = {
        "name": user_data.name,
        "email": user_data.email,
        "hashed_password": hash_password(user_data.password),
        "designation": designation,
        "active_status": True,
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow()
    }

    result = await db.users.insert_one(user_dict)
    user_id = str(result.inserted_id)

    # Audit log
    await audit_service.log_action(
        module_name="USER_MANAGEMENT",
        entity_type="USER",
        entity_id=user_id,
        action_type="CREATE",
        user_id=user_id,
        new_value={"email": user_data.email, "designation": designation}
    )

    user_dict["user_id"] = user_id
    return user_response(user_dict)


@api_router.post("/auth/login", response_model=Token)
async def login(login_data: LoginRequest):
    """Authenticate user and return a 30-minute JWT access token."""
    user = await db.users.find_one({"email": login_data.email})

    if not user or not verify_password(login_data.password, user["hashed_password"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password"
        )

    # Check active status
    if not user.get("active_status", False):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    user_id = str(user["_id"])
    access_token = create_access_token(data={
        "user_id": user_id,
        "email": user["email"],
        "designation": user["designation"]
    })

    logger.info(f"User logged in: user:{user_id}")
    return Token(
        access_token=access_token,
        expires_in=1800,  # 30 minutes in seconds
        user=user_response(user)
    )


@api_router.get("/auth/me", response_model=UserResponse)
async def get_me(current_user: dict = Depends(get_current_user)):
    """Get current authenticated user"""
    user = await permission_checker.get_authenticated_user(current_user)
    return user_response(user)

# ============================================
# PROJECT ENDPOINTS (no delete: projects are never removed)
# ============================================

@api_router.post("/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    project_data: ProjectCreate,
    current_user: dict = Depends(get_current_user)
):
    """Create project with physical progress 0 (JE or ADMIN)"""
    user = await permission_checker.get_authenticated_user(current_user)
    await permission_checker.check_designation(user, PROJECT_CREATE_DESIGNATIONS, "create projects")

    existing = await db.projects.find_one({"project_id": project_data.project_id})
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project ID already exists"
        )

    extra = {"status": project_data.status} if project_data.status else {}
    try:
        aggregate = ProjectAggregate.create(
            project_data.project_id,
            project_data.work_value,
            project_data.bill_submitted_amount,
            **extra
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e)
        )

    project_dict = aggregate.to_document()
    project_dict.update({
        "project_name": project_data.project_name,
        "district": project_data.district,
        "fund": project_data.fund,
        "type_of_work": project_data.type_of_work,
        "nature_of_work": project_data.nature_of_work,
        "project_start_date": project_data.project_start_date,
        "project_end_date": project_data.project_end_date,
        "status_history": [],
        "status_workflow": {},
        "created_by": permission_checker.actor_for(user),
        "created_at": datetime.utcnow(),
        "updated_at": datetime.utcnow()
    })

    try:
        result = await db.projects.insert_one(project_dict)
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Project ID already exists"
        )
    project_oid = str(result.inserted_id)

    # Audit log
    await audit_service.log_action(
        module_name="PROJECT_MANAGEMENT",
        entity_type="PROJECT",
        entity_id=project_oid,
        action_type="CREATE",
        user_id=user["user_id"],
        project_id=project_data.project_id,
        new_value={
            "project_id": project_data.project_id,
            "work_value": aggregate.work_value,
            "bill_submitted_amount": aggregate.bill_submitted_amount
        }
    )

    project_dict["id"] = project_oid
    project_dict.pop("_id", None)
    return serialize_doc(project_dict)


@api_router.get("/projects")
async def get_projects(
    status_filter: str = None,
    current_user: dict = Depends(get_current_user)
):
    """List projects without their embedded logs"""
    await permission_checker.get_authenticated_user(current_user)

    query = {}
    if status_filter:
        query["status"] = status_filter

    projects = await db.projects.find(
        query,
        {"progress_updates": 0, "financial_progress_updates": 0}
    ).sort("created_at", -1).to_list(length=None)

    result = []
    for project in projects:
        project["id"] = str(project.pop("_id"))
        result.append(serialize_doc(project))
    return result


@api_router.get("/projects/{project_id}")
async def get_project(
    project_id: str,
    current_user: dict = Depends(get_current_user)
):
    """Get specific project with progress summary"""
    await permission_checker.get_authenticated_user(current_user)

    project = await db.projects.find_one({"_id": parse_object_id(project_id)})

    if not project:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Project not found"
        )

    aggregate = ProjectAggregate.from_document(project)
    project["financial_progress"] = aggregate.financial_progress
    project["remaining_budget"] = aggregate.remaining_budget
    project["progress_summary"] = aggregate.progress_summary()
    project["id"] = str(project.pop("_id"))
    return serialize_doc(project)

# ============================================
# HEALTH CHECK
# ============================================

@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow(),
        "version": "1.0.0"
    }


# Include progress ledger routes
app.include_router(create_progress_routes(client, db, audit_service, permission_checker))

# Include router in main app
app.include_router(api_router)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=os.environ.get('CORS_ORIGINS', '*').split(','),
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.on_event("shutdown")
async def shutdown_db_client():
    client.close()
