"""Relational entities - the structural records of the municipal network.

Every table exposes a synthetic integer `id` primary key; replayed
UPDATE/DELETE statements address rows by it.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, Float, Date, DateTime, ForeignKey
from swm.database import Base


class Zone(Base):
    __tablename__ = "zone_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Zone_Name = Column(String, nullable=False)
    Created_Date = Column(Date, nullable=True)
    Update_Date = Column(Date, nullable=True)


class Ward(Base):
    __tablename__ = "ward_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Ward_Name = Column(String, nullable=False)
    Zone_ID = Column(Integer, ForeignKey("zone_details.id"), nullable=True)
    Created_Date = Column(Date, nullable=True)
    Update_Date = Column(Date, nullable=True)


class Area(Base):
    __tablename__ = "area_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Area_Name = Column(String, nullable=False)
    Coordinates = Column(String, nullable=True)
    Zone_ID = Column(Integer, ForeignKey("zone_details.id"), nullable=True)
    Ward_ID = Column(Integer, ForeignKey("ward_details.id"), nullable=True)


class Employee(Base):
    __tablename__ = "employee_table"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Full_Name = Column(String, nullable=False)
    Mobile_No = Column(String, nullable=True)
    User_Address = Column(String, nullable=True)
    Blood_Group = Column(String, nullable=True)
    Employment_Type = Column(String, nullable=True)
    Designation = Column(String, nullable=True)
    Father_Name = Column(String, nullable=True)
    Mother_Name = Column(String, nullable=True)
    Joined_Date = Column(Date, nullable=True)
    Assigned_Target = Column(String, nullable=True)
    Assigned_Vehicle_ID = Column(Integer, ForeignKey("vehicle_details.id"), nullable=True)
    QR_ID = Column(String, nullable=True)


class Vehicle(Base):
    __tablename__ = "vehicle_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Vehicle_No = Column(String, nullable=False)
    Vehicle_Type = Column(String, nullable=True)
    Capacity = Column(Float, nullable=True)
    Zone_ID = Column(Integer, ForeignKey("zone_details.id"), nullable=True)
    Status = Column(String, nullable=True)
    Created_Date = Column(Date, nullable=True)


class Device(Base):
    __tablename__ = "device_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Device_Name = Column(String, nullable=False)
    IMEI_No = Column(String, nullable=True)
    Assigned_Emp_ID = Column(Integer, ForeignKey("employee_table.id"), nullable=True)
    Status = Column(String, nullable=True)


class DumpYard(Base):
    __tablename__ = "dump_yard_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    DY_Name = Column(String, nullable=False)
    Coordinates = Column(String, nullable=True)
    Capacity = Column(Float, nullable=True)
    Zone_ID = Column(Integer, ForeignKey("zone_details.id"), nullable=True)


class DustBin(Base):
    __tablename__ = "dust_bin_details"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    Bin_Code = Column(String, nullable=False)
    Coordinates = Column(String, nullable=True)
    Area_ID = Column(Integer, ForeignKey("area_details.id"), nullable=True)
    Capacity = Column(Float, nullable=True)


class IpLog(Base):
    __tablename__ = "ip_log_table"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    IP_Address = Column(String, nullable=False)
    Device_ID = Column(Integer, ForeignKey("device_details.id"), nullable=True)
    Logged_At = Column(DateTime, nullable=False, default=datetime.utcnow)
