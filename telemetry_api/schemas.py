from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class IngestRequest(BaseModel):
    deviceId: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)


class IngestResult(BaseModel):
    deviceId: str
    type: str
    status: str
    reason: Optional[str] = None
    retracted: int = 0
    violations: List[str] = Field(default_factory=list)


class DeviceCreate(BaseModel):
    # Alta manual (deviceId + deviceType + manufacturer) o por prefijo (prefixId)
    deviceId: Optional[str] = None
    deviceType: Optional[str] = None
    manufacturer: Optional[str] = None
    prefixId: Optional[str] = None
    status: Optional[str] = None
    firmwareVersion: Optional[str] = None
    location: Optional[str] = None
    accountId: Optional[str] = None
    deviceModelId: Optional[str] = None
    profileVersion: Optional[int] = None
    validity: Optional[Any] = None


class Device(BaseModel):
    deviceId: str
    deviceType: str
    manufacturer: str
    firmwareVersion: Optional[str] = None
    location: Optional[str] = None
    status: str
    profileId: Optional[str] = None
    userId: Optional[str] = None
    accountId: Optional[str] = None
    deviceModelId: Optional[str] = None
    profileVersion: Optional[int] = None
    validity: Optional[float] = None
    lastActiveAt: Optional[float] = None
    createdAt: Optional[float] = None


class ActivationResult(BaseModel):
    message: str
    deviceId: str
    profileId: str
    status: str


class DeviceMessage(BaseModel):
    message: str
    deviceId: str
    activeDevices: Optional[List[str]] = None


class DeviceMappingItem(BaseModel):
    deviceId: str
    status: str
    active: bool


class ActiveDeviceResult(BaseModel):
    profileId: str
    deviceId: Optional[str] = None


class AvailabilityResult(BaseModel):
    exists: bool
    assigned: bool
    device: Optional[Device] = None


class HeartRateSummary(BaseModel):
    minHR: Optional[float] = None
    avgHR: Optional[float] = None
    maxHR: Optional[float] = None
    count: int = 0


class HistoryResult(BaseModel):
    deviceId: str
    records: List[Dict[str, Any]] = Field(default_factory=list)
    summary: HeartRateSummary
    from_: Optional[float] = Field(default=None, alias="from")
    to: Optional[float] = None

    model_config = {"populate_by_name": True}


class SubscribeRequest(BaseModel):
    deviceId: str = Field(..., min_length=1)


class SubscribeResult(BaseModel):
    deviceId: str
    topics: List[str]
