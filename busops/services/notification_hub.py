import threading
from typing import Any, Callable, Dict, List

import structlog


logger = structlog.get_logger(__name__)

NotificationListener = Callable[[List[Any]], None]
MissionsListener = Callable[[], None]


class NotificationHub:
    """In-process fan-out of notification lists and "missions changed" pings.

    At most one listener per user id; registering again replaces it. Delivery is
    synchronous and best-effort: a user without a listener misses the push and
    must re-query on the next mount.
    """

    def __init__(self) -> None:
        # user_id -> callback receiving the user's full notification list
        self._user_listeners: Dict[str, NotificationListener] = {}
        self._mission_listeners: List[MissionsListener] = []
        self._lock = threading.Lock()

    def register_listener(self, user_id: str, callback: NotificationListener) -> None:
        with self._lock:
            self._user_listeners[user_id] = callback

    def unregister_listener(self, user_id: str) -> None:
        with self._lock:
            self._user_listeners.pop(user_id, None)

    def has_listener(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._user_listeners

    def send_to_user(self, user_id: str, notifications: List[Any]) -> bool:
        with self._lock:
            callback = self._user_listeners.get(user_id)
        if callback is None:
            return False
        try:
            callback(notifications)
        except Exception as e:
            logger.warning("notification_listener_failed", user_id=user_id, error=str(e))
            return False
        return True

    def subscribe_missions(self, callback: MissionsListener) -> None:
        with self._lock:
            if callback not in self._mission_listeners:
                self._mission_listeners.append(callback)

    def unsubscribe_missions(self, callback: MissionsListener) -> None:
        with self._lock:
            if callback in self._mission_listeners:
                self._mission_listeners.remove(callback)

    def missions_changed(self) -> None:
        with self._lock:
            targets = list(self._mission_listeners)
        for callback in targets:
            try:
                callback()
            except Exception as e:
                logger.warning("missions_listener_failed", error=str(e))

    def clear(self) -> None:
        with self._lock:
            self._user_listeners.clear()
            self._mission_listeners.clear()
