"""
Pydantic schemas for authentication API requests and responses.
"""

from pydantic import Field, field_validator

from lugha.schemas.chat import CamelModel, User

# =============================================================================
# Registration / Login
# =============================================================================


class RegisterRequest(CamelModel):
    """Request to create an account with username and password."""

    username: str = Field(..., min_length=3, max_length=50, description="Username (minimum 3 characters)")
    password: str = Field(..., min_length=6, description="Password (minimum 6 characters)")
    email: str | None = Field(None, max_length=255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    preferred_language: str = Field("english", max_length=20)

    @field_validator("username")
    @classmethod
    def validate_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v


class LoginRequest(CamelModel):
    """Request to login with username and password."""

    username: str
    password: str


class TokenResponse(CamelModel):
    """Session token plus the authenticated user."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int = Field(..., description="Access token expiry in seconds")
    user: User


# =============================================================================
# Profile
# =============================================================================


class ProfileUpdate(CamelModel):
    """Editable profile fields. Omitted fields are left unchanged."""

    email: str | None = Field(None, max_length=255)
    first_name: str | None = Field(None, max_length=100)
    last_name: str | None = Field(None, max_length=100)
    avatar: str | None = Field(None, max_length=500)
    preferred_language: str | None = Field(None, min_length=1, max_length=20)
