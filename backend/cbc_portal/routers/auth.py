from typing import Callable, Optional

from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordRequestForm, OAuth2PasswordBearer
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import data_service
from ..db import get_db
from ..models import Profile as ProfileRow
from ..schemas import Profile, Role
from ..security import create_access_token, decode_access_token

router = APIRouter(prefix="/auth", tags=["auth"])

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token")
# Registration works anonymously; a token only matters when granting a role
optional_oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


class Token(BaseModel):
	access_token: str
	token_type: str = "bearer"
	profile: Profile


class RegisterRequest(BaseModel):
	username: str
	password: str
	role: Role = "student"


def issue_token(profile: ProfileRow) -> Token:
	access_token = create_access_token({"sub": profile.username, "role": profile.role})
	return Token(access_token=access_token, profile=Profile.model_validate(profile))


@router.post("/token", response_model=Token)
async def login(form_data: OAuth2PasswordRequestForm = Depends(), db: Session = Depends(get_db)):
	profile = data_service.login(db, form_data.username, form_data.password)
	return issue_token(profile)


def _user_from_token(token: Optional[str], db: Session) -> Optional[ProfileRow]:
	payload = decode_access_token(token) if token else None
	if payload is None:
		return None
	username = payload.get("sub")
	if not username:
		return None
	# Role comes from the row, not the token, so demotions apply immediately
	return data_service.get_profile(db, username)


def get_current_user(token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)) -> ProfileRow:
	row = _user_from_token(token, db)
	if row is None:
		raise HTTPException(status_code=401, detail="Could not validate credentials")
	return row


def get_optional_user(
	token: Optional[str] = Depends(optional_oauth2_scheme),
	db: Session = Depends(get_db),
) -> Optional[ProfileRow]:
	return _user_from_token(token, db)


def require_roles(*roles: str) -> Callable[..., ProfileRow]:
	def dependency(user: ProfileRow = Depends(get_current_user)) -> ProfileRow:
		if user.role not in roles:
			raise HTTPException(status_code=403, detail=f"requires role: {' or '.join(roles)}")
		return user
	return dependency


@router.get("/me", response_model=Profile)
async def me(user: ProfileRow = Depends(get_current_user)):
	return user


@router.post("/register", status_code=201, response_model=Profile)
async def register(
	req: RegisterRequest,
	db: Session = Depends(get_db),
	user: Optional[ProfileRow] = Depends(get_optional_user),
):
	return data_service.register(db, req.username, req.password, req.role, actor=user)
