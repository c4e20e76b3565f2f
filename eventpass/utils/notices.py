"""
Notifications transitoires (type "toast") et demandes de navigation.
- Le service ne rend aucun écran: il accumule des Notice et des NavigationIntent
  que le client mobile affiche / applique.
"""
from dataclasses import dataclass, asdict
from typing import List, Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"
INFO = "info"

# Destinations connues côté client
AUTH = "auth"
TICKETS = "tickets"


@dataclass(frozen=True)
class Notice:
    level: str
    title: str
    message: str = ""


@dataclass(frozen=True)
class NavigationIntent:
    destination: str
    delay: float = 0.0


class NoticeBoard:
    """Collecte les notifications d'un achat, dans l'ordre d'émission."""

    def __init__(self) -> None:
        self._notices: List[Notice] = []

    def push(self, level: str, title: str, message: str = "") -> Notice:
        notice = Notice(level=level, title=title, message=message or "")
        self._notices.append(notice)
        logger.info("notices.push level=%s title=%s", level, title)
        return notice

    def success(self, title: str, message: str = "") -> Notice:
        return self.push(SUCCESS, title, message)

    def error(self, title: str, message: str = "") -> Notice:
        return self.push(ERROR, title, message)

    def info(self, title: str, message: str = "") -> Notice:
        return self.push(INFO, title, message)

    @property
    def notices(self) -> List[Notice]:
        return list(self._notices)

    def last(self) -> Optional[Notice]:
        return self._notices[-1] if self._notices else None

    def drain(self) -> List[Dict[str, Any]]:
        """Retourne puis vide les notifications (elles sont transitoires)."""
        out = [asdict(n) for n in self._notices]
        self._notices.clear()
        return out


class Navigator:
    """Mémorise la dernière navigation demandée (le client l'exécute après `delay`)."""

    def __init__(self) -> None:
        self.intent: Optional[NavigationIntent] = None

    def navigate(self, destination: str, delay: float = 0.0) -> NavigationIntent:
        self.intent = NavigationIntent(destination=destination, delay=delay)
        logger.info("notices.navigate destination=%s delay=%s", destination, delay)
        return self.intent

    def as_dict(self) -> Optional[Dict[str, Any]]:
        return asdict(self.intent) if self.intent else None
