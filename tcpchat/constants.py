# tcpchat wire protocol constants

DEFAULT_HOST = "0.0.0.0"
DEFAULT_CLIENT_HOST = "127.0.0.1"
DEFAULT_PORT = 5208

MAX_CLIENTS = 256
NAME_MAX_CHARS = 31
MAX_LINE_BYTES = 1024
RECV_BUFFER_SIZE = 1024

ENCODING = "utf-8"
LINE_TERMINATOR = b"\n"

# Client -> server
REGISTER_TAG = "#new client:"
PRIVATE_PREFIX = "@"

# Client-local command; never sent over the wire.
QUIT_COMMAND = "quit"

# Server -> client
FMT_BROADCAST = "[{sender}] {body}"
FMT_PRIVATE = "[{sender}][Private] {body}"
FMT_JOINED = "Client {name} has joined the chat"
FMT_LEFT = "Client {name} has left the chat"
FMT_USER_NOT_FOUND = "User {name} not found"

MSG_NAME_TAKEN = "Name already exists. Please choose another name."
MSG_SERVER_FULL = "Server is full. Please try again later."
MSG_BAD_REGISTRATION = f"Expected '{REGISTER_TAG}<name>' as the first message."
FMT_INVALID_NAME = "Invalid name. Names must be 1-{max_chars} characters with no spaces."

MSG_DISCONNECTED = "Disconnected from server"

# Logging
DEFAULT_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
CLIENT_LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"
