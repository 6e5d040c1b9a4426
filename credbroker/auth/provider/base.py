# credbroker/auth/provider/base.py
"""
Assumer Dispatch Registry

등록 순서가 곧 우선순위입니다. resolve()는 프로파일 체인의 루트에 대해
matches()가 True인 첫 번째 전략을 반환합니다.

레지스트리는 전역 상태가 아니라 CredentialBroker가 소유하는 객체입니다.
테스트에서는 position=0 으로 가짜 전략을 등록해 모든 해석을 가로챌 수 있습니다.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable, Iterator

from ..types import Assumer, NoMatchingAssumerError

if TYPE_CHECKING:
    from ..config.profiles import Profile

logger = logging.getLogger(__name__)


class AssumerRegistry:
    """우선순위가 있는 Assumer 목록

    Thread-safe 구현.
    """

    def __init__(self, assumers: Iterable[Assumer] | None = None):
        self._assumers: list[Assumer] = list(assumers or [])
        self._lock = threading.RLock()

    def register(self, assumer: Assumer, position: int = -1) -> None:
        """전략 등록

        Args:
            assumer: 등록할 전략
            position: 삽입 위치 (음수이거나 범위를 벗어나면 맨 뒤에 추가)
        """
        with self._lock:
            if position < 0 or position > len(self._assumers) - 1:
                self._assumers.append(assumer)
            else:
                self._assumers.insert(position, assumer)
        logger.debug("Assumer 등록: %s (position=%d)", assumer.type(), position)

    def resolve(self, profile: Profile) -> Assumer:
        """프로파일 루트에 맞는 첫 번째 전략 반환

        Raises:
            NoMatchingAssumerError: 일치하는 전략 없음
        """
        root = profile.root
        for assumer in self:
            if assumer.matches(root):
                logger.debug("프로파일 '%s' (루트 '%s') → %s", profile.name, root.name, assumer.type())
                return assumer
        raise NoMatchingAssumerError(profile.name)

    def from_type(self, type_name: str) -> Assumer | None:
        """타입 이름으로 전략 조회"""
        for assumer in self:
            if assumer.type() == type_name:
                return assumer
        return None

    def types(self) -> list[str]:
        return [assumer.type() for assumer in self]

    def __iter__(self) -> Iterator[Assumer]:
        with self._lock:
            snapshot = list(self._assumers)
        return iter(snapshot)

    def __len__(self) -> int:
        with self._lock:
            return len(self._assumers)
