from fastapi import Request
from lending.core.library import Library

def get_library(request: Request) -> Library:
    return request.app.state.library
