from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# Modelos de datos expuestos por el proxy
class StatusReading(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    moisture: int = Field(ge=0, le=100)
    is_pumping: bool = Field(alias="isPumping")
    temperature: Optional[float] = None
    timestamp: str  # hora de recepción en el proxy, no la del dispositivo
    simulated: bool = False


class WaterResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    message: str
    pump_duration: int = Field(alias="pumpDuration")  # milisegundos
    simulated: bool = False


class WaterRequest(BaseModel):
    duration: Optional[int] = Field(None, gt=0)


class ErrorPayload(BaseModel):
    error: str


class WaterErrorPayload(BaseModel):
    success: bool = False
    error: str
    message: str


# Respuestas del dispositivo (ESP32)
class DeviceStatus(BaseModel):
    moisture: Optional[float] = None
    pumping: Optional[bool] = None
    temperature: Optional[float] = None


class DeviceAck(BaseModel):
    message: Optional[str] = None
