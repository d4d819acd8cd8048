from datetime import date, datetime
from enum import Enum

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from classbook.core.time_provider import default_time_provider
from classbook.db import Base


def _utcnow() -> datetime:
    return default_time_provider.now().replace(tzinfo=None)


class Role(str, Enum):
    ADMIN = 'admin'
    STUDENT = 'student'


class Organization(Base):
    __tablename__ = 'organizations'
    __table_args__ = (
        UniqueConstraint('slug', name='uq_organizations_slug'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(180), default='default-organization')
    slug: Mapped[str] = mapped_column(String(120), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)

    profiles: Mapped[list['Profile']] = relationship('Profile', back_populates='organization')
    programs: Mapped[list['Program']] = relationship('Program', back_populates='organization')
    settings: Mapped[list['OrganizationSetting']] = relationship(
        'OrganizationSetting',
        back_populates='organization',
        cascade='all, delete-orphan',
    )


class Profile(Base):
    __tablename__ = 'profiles'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), index=True)
    name: Mapped[str] = mapped_column(String(120))
    role: Mapped[str] = mapped_column(String(20), default=Role.STUDENT.value, index=True)
    phone: Mapped[str] = mapped_column(String(32), default='')
    color: Mapped[str] = mapped_column(String(16), default='#2f7bf6')
    class_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    class_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)

    organization: Mapped['Organization'] = relationship('Organization', back_populates='profiles')
    schedules: Mapped[list['Schedule']] = relationship('Schedule', back_populates='student')


class Program(Base):
    __tablename__ = 'programs'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), index=True)
    title: Mapped[str] = mapped_column(String(160), index=True)
    description: Mapped[str] = mapped_column(Text, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, index=True)

    organization: Mapped['Organization'] = relationship('Organization', back_populates='programs')


class OrganizationSetting(Base):
    __tablename__ = 'organization_settings'

    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), primary_key=True)
    setting_key: Mapped[str] = mapped_column(String(60), primary_key=True)
    setting_value: Mapped[str] = mapped_column(Text, default='{}')
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    organization: Mapped['Organization'] = relationship('Organization', back_populates='settings')


class Schedule(Base):
    __tablename__ = 'schedules'
    __table_args__ = (
        Index('ix_schedules_org_start', 'organization_id', 'start_time'),
        Index('ix_schedules_student_start', 'student_id', 'start_time'),
        CheckConstraint('end_time > start_time', name='ck_schedules_end_after_start'),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    organization_id: Mapped[int] = mapped_column(ForeignKey('organizations.id'), index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey('profiles.id'), index=True)
    program_id: Mapped[int | None] = mapped_column(ForeignKey('programs.id', ondelete='SET NULL'), nullable=True, index=True)
    # Naive UTC.
    start_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    rrule: Mapped[str | None] = mapped_column(Text, nullable=True)
    parent_schedule_id: Mapped[int | None] = mapped_column(ForeignKey('schedules.id'), nullable=True, index=True)
    is_exception: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    student: Mapped['Profile'] = relationship('Profile', back_populates='schedules')
    program: Mapped['Program | None'] = relationship('Program')
