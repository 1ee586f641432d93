from attendance_hub.models.base import RecordModel


class ConnectionStatus(RecordModel):
    online: bool
    remote_connected: bool
    local_db_supported: bool
