from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, String, Text, Integer, DateTime, ForeignKey, UniqueConstraint, func
Base = declarative_base()

class JobRow(Base):
    __tablename__ = "jobs"
    job_id = Column(String, primary_key=True, index=True)
    domain = Column(String, nullable=False, default="")
    raw_domain = Column(String, nullable=False, default="")
    branche = Column(String, nullable=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

class CityRecordRow(Base):
    __tablename__ = "city_records"
    __table_args__ = (UniqueConstraint("job_id", "subpage_id", name="uq_city_records_job_subpage"),)
    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String, ForeignKey("jobs.job_id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    name = Column(String, nullable=False, default="")
    postcode = Column(String, nullable=False, default="")
    country = Column(String, nullable=False, default="")
    subpage_id = Column(String, nullable=False)
    status = Column(String, nullable=False, default="pending")
    generated_content = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
