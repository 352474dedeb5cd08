from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select
from sqlalchemy import or_
import logging

from . import models
from .errors import Conflict, InvalidInput, StorageFailure, Unauthorized
from .security import TokenClaims, TokenSigner, hash_password, verify_password

logger = logging.getLogger(__name__)


class PrincipalDirectory:
    """Account records, credential checks and bearer tokens."""

    def __init__(self, db: AsyncSession, signer: TokenSigner):
        self.db = db
        self.signer = signer

    async def register(self, username: str, email: str, password: str) -> int:
        if not username or not email or not password:
            raise InvalidInput("All fields required")

        existing = await self.db.execute(
            select(models.User.id).where(or_(models.User.username == username, models.User.email == email))
        )
        if existing.first() is not None:
            logger.warning(f"Registration rejected, username or email already taken: {username}")
            raise Conflict("Username or email already exists")

        user = models.User(username=username, email=email, password_hash=hash_password(password))
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            # Lost a race against a concurrent registration
            await self.db.rollback()
            raise Conflict("Username or email already exists") from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to register user '{username}': {e}")
            raise StorageFailure("Registration failed") from e

        logger.info(f"Registered user '{username}' with id {user.id}")
        return user.id

    async def authenticate(self, email: str, password: str) -> tuple[models.User, str]:
        result = await self.db.execute(select(models.User).where(models.User.email == email))
        user = result.scalars().first()
        # Same error for unknown email and wrong password
        if user is None or not verify_password(password or "", user.password_hash):
            logger.warning(f"Failed login attempt for email '{email}'")
            raise Unauthorized("Invalid credentials")

        token = self.signer.issue(user.id, user.username)
        logger.info(f"User {user.id} logged in")
        return user, token

    def verify(self, token: str) -> TokenClaims:
        return self.signer.verify(token)
