# db_backup/error_parser.py

def parse_tool_error(stderr: str, engine: str) -> str:
    """
    Parses the stderr output from a dump or restore command and returns a human-readable summary.
    """
    stderr = (stderr or "").lower()

    if engine == "postgresql":
        if "password authentication failed" in stderr:
            return "Authentication error: the supplied password was rejected."
        if "authentication failed" in stderr:
            return "Authentication error: the username or password is incorrect."
        if "does not exist" in stderr and "database" in stderr:
            return "Database error: the requested database does not exist."
        if "connection refused" in stderr:
            return "Connection error: the database server refused the connection. Check host and port."
        if "could not translate host name" in stderr:
            return "Connection error: the host name could not be resolved."
        if "timeout expired" in stderr:
            return "Connection error: timed out while connecting to the server."
        if "permission denied" in stderr:
            return "Permission error: the user lacks the privileges required for this operation."

    elif engine == "mongodb":
        if "authentication failed" in stderr:
            return "Authentication error: the username or password is incorrect."
        if "could not connect to server" in stderr:
            return "Connection error: could not reach the server. Check host and port."
        if "failed to connect" in stderr:
            return "Connection error: failed to connect to the server. Check the network configuration."
        if "unauthorized" in stderr or "not authorized" in stderr:
            return "Permission error: the user lacks the privileges required for this operation."

    if "not found" in stderr and "executable" in stderr:
        return "Tool error: the required executable is not installed or not on PATH."

    return "Unknown error: the command failed for an unidentified reason. Check the full log for details."
