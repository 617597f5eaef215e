"""User-facing message templates (``%`` formatted)."""

# orders
ORDER_NOT_FOUND = "Order not found: %s"
ORDER_STATE_TRANSITION_INVALID = "Invalid state transition for order %s: %s"
ORDER_PERSIST_FAILED = "Could not persist order %s"
ORDER_ALREADY_EXISTS = "Order %s already exists"
ORDER_VERSION_CONFLICT = "Order %s was modified concurrently (expected version %s); reload and retry"
DESCRIPTION_TOO_LONG = "Description cannot exceed 1000 characters"

# devices
DEVICE_NOT_FOUND_BY_IDS = "Devices not found for ids: %s"
EQUIPMENT_NOT_AVAILABLE = "The following devices are not available: %s"
EQUIPMENT_RESERVE_FAILED = "Could not reserve devices: %s"
EQUIPMENT_RESTORE_FAILED = "Could not restore device states for order %s"
INVALID_EQUIPMENT_LIST = "Invalid device list"
ORIGINAL_STATE_REQUIRED = "Original state is required for device %s"
DEVICE_ERROR_COMMUNICATION = "Error communicating with the device service"

# assignees
ASSIGNEE_REQUIRED = "Assignee type and id are required"
ASSIGNEE_NOT_FOUND = "Assignee not found: %s (%s)"
GROUP_NOT_FOUND = "Group %s was not found"
GROUP_NO_MEMBERS = "Group %s has no members with a valid email"
EMPLOYEE_NOT_FOUND = "Employee %s was not found"
EMPLOYEE_INACTIVE = "Employee %s is not active"
EMPLOYEE_NO_EMAIL = "Employee %s has no registered email"

# generic
INVALID_REQUEST = "Invalid request"
SERVICE_UNAVAILABLE = "Dependent service is unavailable, try again later"
DEPENDENCY_ERROR = "Error communicating with a dependent service"
INTERNAL_ERROR = "An unexpected error occurred. Error ID: %s"
