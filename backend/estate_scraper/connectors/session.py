import random
import uuid
from dataclasses import dataclass, field
from typing import Dict, Optional

FIREFOX_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:122.0) Gecko/20100101 Firefox/122.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:121.0) Gecko/20100101 Firefox/121.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14.3; rv:123.0) Gecko/20100101 Firefox/123.0",
    "Mozilla/5.0 (X11; Ubuntu; Linux x86_64; rv:122.0) Gecko/20100101 Firefox/122.0",
]

BASE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-GB,en-US;q=0.9,en;q=0.8",
    "Accept-Encoding": "gzip, deflate, br",
    "DNT": "1",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
}


@dataclass
class Session:
    """Identity attached to every outbound request of a run."""

    id: str
    user_agent: str
    headers: Dict[str, str] = field(default_factory=dict)
    cookies: Dict[str, str] = field(default_factory=dict)

    def identity(self) -> tuple:
        return (self.id, self.user_agent, tuple(sorted(self.headers.items())), tuple(sorted(self.cookies.items())))


def create_session(rng: Optional[random.Random] = None, exclude_user_agent: Optional[str] = None) -> Session:
    rng = rng or random
    pool = [ua for ua in FIREFOX_USER_AGENTS if ua != exclude_user_agent] or FIREFOX_USER_AGENTS
    user_agent = rng.choice(pool)
    headers = {"User-Agent": user_agent, **BASE_HEADERS}
    return Session(id=uuid.uuid4().hex, user_agent=user_agent, headers=headers, cookies={})


def rotate_session(session: Session, rng: Optional[random.Random] = None) -> Session:
    # Replaced in place so every holder of the object sees the new identity.
    fresh = create_session(rng, exclude_user_agent=session.user_agent)
    session.id = fresh.id
    session.user_agent = fresh.user_agent
    session.headers = fresh.headers
    session.cookies = fresh.cookies
    return session
