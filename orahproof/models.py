from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

ADDRESS_REGEX = r'^0x[a-fA-F0-9]{40}$'


class LocationModel(BaseModel):
    latitude: float
    longitude: float


class IoTDataPoint(BaseModel):
    # Unknown sensor fields are kept and hashed with the reading.
    model_config = ConfigDict(extra="allow")

    timestamp: str
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    location: Optional[LocationModel] = None

    def to_reading(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class VerificationRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    batch_id: str = Field(alias="batchId", min_length=1)
    producer_address: str = Field(alias="producerAddress", pattern=ADDRESS_REGEX)
    iot_data: List[IoTDataPoint] = Field(alias="iotData", min_length=1)
    metadata: Optional[Dict[str, Any]] = None

    def readings(self) -> List[Dict[str, Any]]:
        return [point.to_reading() for point in self.iot_data]


class ApiKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    producer_address: Optional[str] = Field(default=None, alias="producerAddress")


class RevokeApiKeyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    api_key: str = Field(alias="apiKey", min_length=1)
