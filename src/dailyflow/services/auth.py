import uuid

from fastapi import HTTPException

from dailyflow.core.security import create_access_token, hash_password, verify_password
from dailyflow.db.schema import User
from dailyflow.models.auth import TokenResponse, UserLogin, UserRegister, UserResponse
from dailyflow.services.base import BaseService


class AuthService(BaseService):
    def _issue(self, user: User) -> TokenResponse:
        return TokenResponse(
            access_token=create_access_token(user.id),
            user=UserResponse.model_validate(user),
        )

    def register(self, data: UserRegister) -> TokenResponse:
        email = data.email.lower()
        with self.session as session:
            existing = session.query(User).filter(User.email == email).first()
            if existing:
                raise HTTPException(
                    status_code=400,
                    detail="User with this email already exists",
                )
            user = User(
                full_name=data.full_name,
                email=email,
                password_hash=hash_password(data.password),
            )
            session.add(user)
            session.commit()
            session.refresh(user)
            return self._issue(user)

    def login(self, data: UserLogin) -> TokenResponse:
        with self.session as session:
            user = session.query(User).filter(User.email == data.email.lower()).first()
            if not user or not verify_password(data.password, user.password_hash):
                raise HTTPException(status_code=401, detail="Invalid email or password")
            return self._issue(user)

    def get_user(self, user_id: uuid.UUID) -> User:
        with self.session as session:
            user = session.query(User).filter(User.id == user_id).first()
            if not user:
                raise HTTPException(status_code=404, detail="User not found")
            return user
