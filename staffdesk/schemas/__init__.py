from staffdesk.schemas.auth import Token, UserLogin, UserResponse
from staffdesk.schemas.employee import EmployeeCreate, EmployeeResponse
from staffdesk.schemas.rota import (
    ChangeLogResponse,
    ManualRotaCreate,
    RotaResponse,
    RotaScheduleResponse,
    RotaScheduleUpdate,
    RotaUploadPreview,
)
