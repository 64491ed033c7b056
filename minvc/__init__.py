# MiniVC - a minimal model-view-controller layer for WSGI
# Controllers map the last segment of a URL onto an action handler,
# handlers render views through one shared Jinja2 layout.
from .core import MiniVC, WSGIRequest, WSGIResponse, RequestPart, parse_multipart, __version__
from .controller import (
    Controller,
    ViewRenderer,
    extract_filename,
    get_action,
    ACTION_SUFFIX,
    LAYOUT_PATH,
    MAIN_VIEW_ATTRIBUTE,
    NOT_FOUND_TITLE,
    NOT_FOUND_VIEW_PATH,
    BODY_ATTRIBUTE,
    SCRIPTS_ATTRIBUTE,
    STYLES_ATTRIBUTE,
    TITLE_ATTRIBUTE,
)
from .exceptions import MiniVCError, ResponseCommittedError
