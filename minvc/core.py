#################################################################################################
# MiniVC
#
# A minimal model-view-controller layer for WSGI applications
#
# controllers map the last segment of a URL onto an action handler, handlers render views
# through one shared Jinja2 layout
#
# MIT License
#
#################################################################################################
import logging
from http import HTTPStatus
from urllib.parse import parse_qs, quote

from jinja2 import ChoiceLoader, Environment, FileSystemLoader, PackageLoader, select_autoescape
from python_multipart.multipart import MultipartParser, parse_options_header

from .controller import Controller, ViewRenderer, extract_filename, LAYOUT_PATH, NOT_FOUND_VIEW_PATH
from .exceptions import ResponseCommittedError

__version__ = "0.1.0"

REDIRECT_STATUSES = (301, 302, 303, 307, 308)

# ------------------------------
# Multipart Parts
# ------------------------------
class RequestPart:
    """
    One part of a multipart/form-data request body.
    Header names are stored lower-cased so lookups are case-insensitive.
    """
    def __init__(self, headers, data):
        self.headers = headers
        self.data = data

    def get_header(self, name):
        return self.headers.get(name.lower())

    @property
    def name(self):
        """The form field name from the content-disposition header, or None."""
        disposition = self.get_header("content-disposition")
        if disposition is None:
            return None
        _, params = parse_options_header(disposition)
        name = params.get(b"name")
        return name.decode("utf-8") if name is not None else None

    @property
    def content_type(self):
        return self.get_header("content-type") or "text/plain"

    @property
    def size(self):
        return len(self.data)

    def save(self, path):
        """
        Write the part's content to path.

        The path is used as given. A filename taken from the client
        (see minvc.controller.extract_filename) is not sanitised.
        """
        with open(path, "wb") as f:
            f.write(self.data)

    def __repr__(self):
        return f"RequestPart({self.name!r}, {self.content_type!r}, {self.size} bytes)"


def parse_multipart(body, content_type):
    """
    Split a multipart/form-data body into a list of RequestPart objects.

    Raises ValueError when the content type has no boundary, and the
    python-multipart parse errors (also ValueErrors) on a malformed body.
    """
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if boundary is None:
        raise ValueError("Multipart form data missing boundary parameter")

    parts = []
    headers = {}
    data = bytearray()
    field = bytearray()
    value = bytearray()

    def on_part_begin():
        nonlocal headers, data
        headers = {}
        data = bytearray()

    def on_part_data(chunk, start, end):
        data.extend(chunk[start:end])

    def on_header_field(chunk, start, end):
        field.extend(chunk[start:end])

    def on_header_value(chunk, start, end):
        value.extend(chunk[start:end])

    def on_header_end():
        headers[field.decode("latin-1").lower()] = value.decode("latin-1")
        field.clear()
        value.clear()

    def on_part_end():
        parts.append(RequestPart(headers, bytes(data)))

    parser = MultipartParser(boundary, callbacks={
        "on_part_begin": on_part_begin,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
        "on_header_end": on_header_end,
    })
    parser.write(body)
    parser.finalize()
    return parts

# ------------------------------
# WSGI-Adapted Request and Response Classes
# ------------------------------
class WSGIRequest:
    def __init__(self, environ):
        self.environ = environ
        self.method = environ.get("REQUEST_METHOD", "GET")
        self.path = environ.get("PATH_INFO", "/")
        # the application's base path, where the WSGI server mounted us
        self.script_name = environ.get("SCRIPT_NAME", "").rstrip("/")
        self.query_params = parse_qs(environ.get("QUERY_STRING", ""))
        # Build headers from the WSGI environ (headers are in HTTP_ variables)
        self.headers = {}
        for key, value in environ.items():
            if key.startswith("HTTP_"):
                header_name = key[5:].replace("_", "-").title()
                self.headers[header_name] = value
        if "CONTENT_TYPE" in environ:
            self.headers["Content-Type"] = environ["CONTENT_TYPE"]
        if "CONTENT_LENGTH" in environ:
            self.headers["Content-Length"] = environ["CONTENT_LENGTH"]
        # view data lives here for the duration of one request
        self.attributes = {}
        self._body = None
        self._form = None
        self._parts = None

    @property
    def full_path(self):
        """
        Base path plus path as text. WSGI servers pass both as the UTF-8
        bytes of the URL decoded as latin-1, so undo that here.
        Raises UnicodeError if the environ holds characters latin-1 cannot encode.
        """
        raw = self.script_name + self.path
        return raw.encode("latin-1").decode("utf-8", "replace")

    @property
    def url(self):
        """
        Reconstruct the full request URL (scheme, host, base path, path, query).
        """
        environ = self.environ
        scheme = environ.get("wsgi.url_scheme", "http")
        host = environ.get("HTTP_HOST")
        if not host:
            host = environ.get("SERVER_NAME", "localhost")
            port = environ.get("SERVER_PORT")
            if port and (scheme, port) not in (("http", "80"), ("https", "443")):
                host += ":" + port
        url = f"{scheme}://{host}{quote(self.full_path)}"
        if environ.get("QUERY_STRING"):
            url += "?" + environ["QUERY_STRING"]
        return url

    def get_header(self, name, default=None):
        return self.headers.get(name.title(), default)

    def set_attribute(self, key, value):
        self.attributes[key] = value

    def get_attribute(self, key, default=None):
        return self.attributes.get(key, default)

    def get_post_data(self):
        """
        Read and return the raw request body.
        The input stream is read once, later calls return the cached bytes.
        """
        if self._body is None:
            try:
                length = int(self.environ.get('CONTENT_LENGTH', 0))
            except (ValueError, TypeError):
                length = 0
            self._body = self.environ['wsgi.input'].read(length) if length > 0 else b""
        return self._body

    @property
    def is_multipart(self):
        content_type = self.get_header("Content-Type", "")
        return content_type.lower().startswith("multipart/form-data")

    @property
    def parts(self):
        """
        The parts of a multipart/form-data POST body, or an empty list.
        """
        if self._parts is None:
            if self.method.upper() == "POST" and self.is_multipart:
                self._parts = parse_multipart(self.get_post_data(), self.get_header("Content-Type"))
            else:
                self._parts = []
        return self._parts

    def get_part(self, name):
        for part in self.parts:
            if part.name == name:
                return part
        return None

    @property
    def form(self):
        """
        Parse the POST data and return it as a dictionary.
        If a key has a single value, it returns that value; otherwise, it returns a list.
        Multipart bodies contribute their non-file fields only.
        """
        if self._form is None:
            if self.method.upper() != "POST":
                self._form = {}
            elif self.is_multipart:
                parsed = {}
                for part in self.parts:
                    if part.name is None or extract_filename(part) is not None:
                        continue
                    parsed.setdefault(part.name, []).append(part.data.decode("utf-8", errors="replace"))
                self._form = {key: value[0] if len(value) == 1 else value
                              for key, value in parsed.items()}
            else:
                parsed = parse_qs(self.get_post_data().decode('utf-8'))
                self._form = {key: value[0] if len(value) == 1 else value
                              for key, value in parsed.items()}
        return self._form


class WSGIResponse:
    def __init__(self):
        self._headers = {}
        self.status_code = 200  # Default status code
        self.body = ""
        # set once a body or a redirect has been written
        self.committed = False

    def set_header(self, key, value):
        self._headers[key] = value

    def get_header(self, key, default=None):
        return self._headers.get(key, default)

    @property
    def headers(self):
        return list(self._headers.items())

    def write(self, body):
        if self.committed:
            raise ResponseCommittedError("Cannot write a body: response already committed")
        self.body = body
        self.committed = True

    def redirect(self, location, status_code=302):
        """
        Set up a redirect response.

        Parameters:
          location (str): The URL to redirect to.
          status_code (int): The HTTP status code for the redirect (default is 302).
        """
        if self.committed:
            raise ResponseCommittedError("Cannot redirect: response already committed")
        self.status_code = status_code
        self.set_header("Location", location)
        self.committed = True

# ------------------------------
# MiniVC Application Class with Multiple Server Support
# ------------------------------
class MiniVC:
    def __init__(self, template_folder='templates', layout_path=LAYOUT_PATH,
                 not_found_path=NOT_FOUND_VIEW_PATH, logger=None):
        self.mounts = []  # (prefix, controller), longest prefix first
        self.not_found_path = not_found_path
        self.logger = logger
        # the application's own templates shadow the packaged defaults
        self.jinja_env = Environment(
            loader=ChoiceLoader([
                FileSystemLoader(template_folder),
                PackageLoader("minvc", "templates"),
            ]),
            autoescape=select_autoescape(["html"]),
        )
        self.renderer = ViewRenderer(self.jinja_env, layout_path=layout_path, logger=logger)

    def controller(self, name=None):
        """
        Create a controller that renders through this application's layout.
        """
        return Controller(self.renderer, not_found_path=self.not_found_path,
                          logger=self.logger, name=name)

    def mount(self, prefix, controller):
        """
        Route every request whose path starts with prefix to controller.

          mount(prefix, controller):

          prefix - "/" or a path such as "/home"; the controller receives
                   "/home", "/home/" and everything below it
          controller - a Controller, usually from app.controller()
        """
        if controller is None:
            raise ValueError("MiniVC.mount requires a controller")
        prefix = "/" + prefix.strip("/")
        if prefix == "/":
            prefix = ""
        for existing, _ in self.mounts:
            if existing == prefix:
                raise ValueError(f"A controller is already mounted at '{prefix or '/'}'.")
        self.mounts.append((prefix, controller))
        self.mounts.sort(key=lambda mount: len(mount[0]), reverse=True)
        return controller

    def find_controller(self, path):
        for prefix, controller in self.mounts:
            if not prefix or path == prefix or path.startswith(prefix + "/"):
                return controller
        return None

    # ------------------------------
    # WSGI Application Interface
    # ------------------------------
    def wsgi_app(self, environ, start_response):
        req = WSGIRequest(environ)
        res = WSGIResponse()

        controller = self.find_controller(req.path)
        if controller is None:
            status = 404
            body = "404 Not Found"
        else:
            controller.dispatch(req, res)
            status = res.status_code
            body = res.body

        status_message = self._http_status_message(status)
        headers = [("Content-Type", "text/html; charset=utf-8")]

        # Include any headers set in the response object
        for key, value in res.headers:
            if key.lower() == "content-type":
                headers[0] = (key, value)
            else:
                headers.append((key, value))

        start_response(f"{status} {status_message}", headers)

        # If it's a redirect, we don't need a body
        if status in REDIRECT_STATUSES:
            return [b""]

        if isinstance(body, str):
            body = body.encode("utf-8")  # Convert string to bytes

        return [body]

    def __call__(self, environ, start_response):
        return self.wsgi_app(environ, start_response)

    def _http_status_message(self, status_code):
        """return the standard reason phrase given a status_code."""
        try:
            return HTTPStatus(status_code).phrase
        except ValueError:
            return "Unknown Status Code"

    # ------------------------------
    # Unified Run Method Supporting Multiple Servers
    # ------------------------------
    def run(self, host='127.0.0.1', port=5000, server='wsgiref', keyfile=None, certfile=None):
        """
        Run the application using the specified server.

        Parameters:
          host    - hostname to bind (default '127.0.0.1')
          port    - port number to bind (default 5000)
          server  - one of 'wsgiref', 'waitress', 'paste', 'twisted'
          keyfile - path to an SSL key file (for 'twisted' SSL; ignored by others)
          certfile- path to an SSL certificate file (for 'twisted' SSL; ignored by others)
        """
        log = self.logger or logging.getLogger("minvc")
        server = server.lower()
        if server == 'wsgiref':
            from wsgiref.simple_server import make_server
            if keyfile or certfile:
                log.warning("wsgiref does not support SSL. Ignoring keyfile/certfile.")
            log.info("Serving on http://%s:%s with wsgiref", host, port)
            httpd = make_server(host, port, self.wsgi_app)
            httpd.serve_forever()

        elif server == 'waitress':
            from waitress import serve
            log.info("Serving on http://%s:%s with waitress", host, port)
            serve(self.wsgi_app, host=host, port=port)

        elif server == 'paste':
            from paste import httpserver
            log.info("Serving on http://%s:%s with paste", host, port)
            httpserver.serve(self.wsgi_app, host=host, port=str(port))

        elif server == 'twisted':
            from twisted.web.wsgi import WSGIResource
            from twisted.web.server import Site
            from twisted.internet import reactor
            resource = WSGIResource(reactor, reactor.getThreadPool(), self.wsgi_app)
            site = Site(resource)
            if keyfile and certfile:
                from twisted.internet import ssl
                contextFactory = ssl.DefaultOpenSSLContextFactory(keyfile, certfile)
                reactor.listenSSL(port, site, contextFactory, interface=host)
                log.info("Serving on https://%s:%s with twisted", host, port)
            else:
                reactor.listenTCP(port, site, interface=host)
                log.info("Serving on http://%s:%s with twisted", host, port)
            reactor.run()

        else:
            raise ValueError(f"Unknown server type: {server}")
