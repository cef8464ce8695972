from fastapi import Query, Request

from app.config import settings


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


class PageParams:
    def __init__(
        self,
        page: int = Query(1, ge=1),
        limit: int | None = Query(None, ge=1),
    ) -> None:
        self.page = page
        self.limit = min(limit or settings.default_page_size, settings.max_page_size)
