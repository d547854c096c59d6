import math
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field
from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    pass


class AccountModel(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)


class LockdownModel(Base):
    __tablename__ = "lockdowns"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String(45), nullable=False, index=True)
    username = Column(String, nullable=True)
    locked_at = Column(DateTime, nullable=False)
    release_at = Column(DateTime, nullable=False)
    manually_released = Column(Boolean, nullable=False, default=False)


class FailedAttemptModel(Base):
    __tablename__ = "login_fails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ip = Column(String(45), nullable=False, index=True)
    username = Column(String, nullable=True)
    attempted_at = Column(DateTime, nullable=False, index=True)


class LockdownSettings(BaseModel):
    max_retries: int = Field(default=3, ge=1)
    observation_window_s: int = Field(default=300, ge=1)
    lockout_duration_s: int = Field(default=3600, ge=1)
    window_mode: Literal["sliding", "fixed"] = "sliding"
    lockout_invalid_usernames: bool = False


class LockRecord(BaseModel):
    id: int
    ip: str
    username: str | None = None
    locked_at: datetime
    release_at: datetime
    manually_released: bool = False

    @classmethod
    def from_orm_model(cls, orm_lock: LockdownModel) -> "LockRecord":
        return cls(
            id=orm_lock.id,
            ip=orm_lock.ip,
            username=orm_lock.username,
            locked_at=orm_lock.locked_at,
            release_at=orm_lock.release_at,
            manually_released=bool(orm_lock.manually_released),
        )

    def is_active(self, now: datetime) -> bool:
        return not self.manually_released and now < self.release_at

    def minutes_left(self, now: datetime) -> int:
        seconds = (self.release_at - now).total_seconds()
        return max(0, math.ceil(seconds / 60))


class LockdownListItem(BaseModel):
    lockdown_ID: int
    minutes_left: int
    lockdown_IP: str


LIST_COLUMNS = ["lockdown_ID", "minutes_left", "lockdown_IP"]
