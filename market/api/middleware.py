from urllib.parse import parse_qs


class MethodOverrideMiddleware:
    """
    HTML forms can only POST; ``POST /path?_method=DELETE`` is dispatched
    as ``DELETE /path``.
    """

    ALLOWED = {"PUT", "PATCH", "DELETE"}

    def __init__(self, app):
        self.app = app

    async def __call__(self, scope, receive, send):
        if scope["type"] == "http" and scope["method"] == "POST":
            params = parse_qs(scope.get("query_string", b"").decode("latin-1"))
            override = (params.get("_method") or [""])[0].upper()
            if override in self.ALLOWED:
                scope = dict(scope, method=override)
        await self.app(scope, receive, send)
