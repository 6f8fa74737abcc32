from __future__ import annotations

import uuid


class UuidIdProvider:
    def generate(self) -> str:
        return str(uuid.uuid4())
