# mpbot/models.py
from sqlalchemy import JSON, BigInteger, Boolean, Column, Float, Index, Integer, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()

# timestamps are epoch milliseconds, written by the application


class TargetRow(Base):
    __tablename__ = "targets"
    key = Column(Text, primary_key=True)
    theta_deg = Column(Float, nullable=False)
    phi_deg = Column(Float, nullable=False)
    tolerance = Column(Float, nullable=False, default=10.0)
    updated_at = Column(BigInteger, nullable=False, index=True)


class ObservationRow(Base):
    __tablename__ = "observations"
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(Text, nullable=False)
    theta_deg = Column(Float, nullable=False)
    phi_deg = Column(Float, nullable=False)
    ts = Column(BigInteger, nullable=False)

    __table_args__ = (Index("ix_observations_key_ts", "key", "ts"),)


class LicenseRow(Base):
    __tablename__ = "licenses"
    key = Column(Text, primary_key=True)
    plan = Column(Text, nullable=False, default="pro")
    uids = Column(JSON, nullable=False, default=list)  # bound device ids, oldest first
    expires_at = Column(BigInteger, nullable=True)  # null => never expires
    max_devices = Column(Integer, nullable=False, default=1)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(BigInteger, nullable=False, index=True)
    updated_at = Column(BigInteger, nullable=False)
    version = Column(Integer, nullable=False, default=0)


class LicenseHistoryRow(Base):
    __tablename__ = "license_history"
    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(Text, nullable=False, index=True)
    action = Column(Text, nullable=False)
    from_uid = Column(Text, nullable=True)
    to_uid = Column(Text, nullable=True)
    info = Column(Text, nullable=True)
    ts = Column(BigInteger, nullable=False)
