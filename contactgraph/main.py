from contactgraph.api.main import app

__all__ = ["app"]
