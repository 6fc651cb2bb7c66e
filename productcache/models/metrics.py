from pydantic import BaseModel, computed_field


class Metrics(BaseModel):
    total_requests: int = 0
    hits: int = 0
    misses: int = 0
    evictions: int = 0

    @computed_field  # type: ignore[prop-decorator]
    @property
    def hit_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    @computed_field  # type: ignore[prop-decorator]
    @property
    def miss_rate(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.misses / self.total_requests
