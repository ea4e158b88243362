"""Wire text shared by the console stream and the HTTP surface."""

STDERR_PREFIX = "ERROR: "

WELCOME_BANNER = "--- Connected to server console (client ID: {client_id}, timestamp: {timestamp}) ---"
COMMAND_ACK = "Command received: {command}"

STATUS_RUNNING = "Server is running."
STATUS_NOT_RUNNING = "Server is not running."
START_OK = "Server started."
START_ALREADY_RUNNING = "Server is already running."
START_FAILED = "Error starting server: {reason}"
STOP_OK = "Server stopped."
STOP_FAILED = "Error stopping server: {reason}"

VERSION = "0.1.0"
