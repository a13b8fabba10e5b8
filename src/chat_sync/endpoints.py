DEFAULT_RECENT_COUNT = 5

SESSIONS = "/ChatSessions"
CHAT_MESSAGES = "/ChatMessages"


def sessions_by_user(user_id: int) -> str:
    return f"/ChatSessions/user/{user_id}"


def session(session_id: str) -> str:
    return f"/ChatSessions/{session_id}"


def message(message_id: int) -> str:
    return f"/ChatMessages/{message_id}"


def recent_messages(session_id: str) -> str:
    return f"/ChatMessages/session/{session_id}/recent"
