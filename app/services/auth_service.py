import logging
from typing import Optional, List
from uuid import UUID

from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, InvalidCredentialsError, NotFoundError, ValidationError
from app.core.sanitization import sanitize_email, sanitize_optional_name
from app.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    validate_password_strength,
)
from app.models import Dashboard, DashboardAccess, Integration, Kpi, KpiAccess, ShareLink, User, UserRole
from app.schemas.auth import RegisterRequest, UpdateProfileRequest

logger = logging.getLogger(__name__)


class AuthService:
    """Service for handling authentication and user management business logic."""

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get a user by email address."""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_user_by_id(db: Session, user_id: UUID) -> Optional[User]:
        """Get a user by ID."""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """Authenticate a user by email and password."""
        user = AuthService.get_user_by_email(db, email)
        if not user:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    @staticmethod
    def issue_token(user: User) -> str:
        return create_access_token(data={"sub": str(user.id), "role": user.role})

    @staticmethod
    def register(db: Session, data: RegisterRequest) -> tuple[User, str]:
        """
        Create an account and return it with an access token.
        The first account becomes ADMIN, later ones start as VIEWER.
        """
        try:
            validate_password_strength(data.password)
        except ValueError as e:
            raise ValidationError(str(e))

        email = sanitize_email(data.email)
        if AuthService.get_user_by_email(db, email):
            raise ConflictError("Email already registered")

        is_first_user = db.query(User).count() == 0
        user = User(
            email=email,
            password_hash=get_password_hash(data.password),
            name=sanitize_optional_name(data.name),
            role=UserRole.ADMIN.value if is_first_user else UserRole.VIEWER.value,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        logger.info(f"Registered user {user.id} with role {user.role}")

        return user, AuthService.issue_token(user)

    @staticmethod
    def login(db: Session, email: str, password: str) -> tuple[User, str]:
        """Authenticate and return the user with an access token."""
        user = AuthService.authenticate_user(db, email, password)
        if not user:
            raise InvalidCredentialsError()
        return user, AuthService.issue_token(user)

    @staticmethod
    def update_profile(db: Session, user: User, data: UpdateProfileRequest) -> User:
        """Change the display name and, with the current password, the password."""
        if "name" in data.model_fields_set:
            user.name = sanitize_optional_name(data.name)

        if data.new_password:
            if not data.current_password or not verify_password(data.current_password, user.password_hash):
                raise ValidationError("Current password is incorrect")
            try:
                validate_password_strength(data.new_password)
            except ValueError as e:
                raise ValidationError(str(e))
            user.password_hash = get_password_hash(data.new_password)

        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_all_users(db: Session) -> List[User]:
        return db.query(User).order_by(User.created_at.asc()).all()

    @staticmethod
    def change_role(db: Session, acting_user: User, user_id: UUID, role: UserRole) -> User:
        """Set another user's global role (admins only, never their own)."""
        if acting_user.id == user_id:
            raise ValidationError("You cannot change your own role")

        user = AuthService.get_user_by_id(db, user_id)
        if not user:
            raise NotFoundError("User")

        user.role = role.value
        db.commit()
        db.refresh(user)
        logger.info(f"User {acting_user.id} set role of {user.id} to {role.value}")
        return user

    @staticmethod
    def delete_user(db: Session, acting_user: User, user_id: UUID) -> None:
        """
        Delete a user with their access entries and share links.
        Rejected while they own dashboards or KPIs.
        """
        if acting_user.id == user_id:
            raise ValidationError("You cannot delete your own account")

        user = AuthService.get_user_by_id(db, user_id)
        if not user:
            raise NotFoundError("User")

        owned_dashboards = db.query(Dashboard).filter(Dashboard.owner_id == user_id).count()
        owned_kpis = db.query(Kpi).filter(Kpi.owner_id == user_id).count()
        if owned_dashboards or owned_kpis:
            raise ConflictError(
                f"User owns {owned_dashboards} dashboard(s) and {owned_kpis} KPI(s); "
                "reassign or delete them first"
            )

        db.query(DashboardAccess).filter(DashboardAccess.user_id == user_id).delete(synchronize_session=False)
        db.query(KpiAccess).filter(KpiAccess.user_id == user_id).delete(synchronize_session=False)
        db.query(ShareLink).filter(ShareLink.created_by == user_id).delete(synchronize_session=False)
        for model in (DashboardAccess, KpiAccess):
            db.query(model).filter(model.granted_by == user_id).update(
                {model.granted_by: None}, synchronize_session=False
            )
        db.query(Integration).filter(Integration.created_by == user_id).update(
            {Integration.created_by: None}, synchronize_session=False
        )
        db.delete(user)
        db.commit()
        logger.info(f"User {acting_user.id} deleted user {user_id}")
