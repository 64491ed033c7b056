#################################################################################################
# MiniVC
#
# Controllers, action dispatch and view rendering
#
# MIT License
#
#################################################################################################
import logging

from jinja2 import TemplateError

from .exceptions import ResponseCommittedError

# Path of the layout every view is rendered into
LAYOUT_PATH = "shared/layout.html"

# Path of the view rendered when no action matches
NOT_FOUND_VIEW_PATH = "shared/http_not_found.html"

# Attribute the layout reads to find the view it should include
MAIN_VIEW_ATTRIBUTE = "partialViewMain"

# Appended to an action name to form its handler's binding name
ACTION_SUFFIX = "Action"

# Attributes the default layout knows how to insert. body is inserted
# as markup, unescaped; the others are escaped
BODY_ATTRIBUTE = "body"
SCRIPTS_ATTRIBUTE = "scripts"
STYLES_ATTRIBUTE = "styles"
TITLE_ATTRIBUTE = "title"

NOT_FOUND_TITLE = "Http Not Found"

# ------------------------------
# Helpers
# ------------------------------
def get_action(path, logger):
    """
    Return the action name for a request path: its last non-empty segment,
    lower-cased. Returns None when the path has no segments.
    """
    segments = [s for s in path.lower().split("/") if s]
    if not segments:
        return None
    action_name = segments[-1]
    logger.info("Returning action: %s", action_name)
    return action_name


def binding_name(action_name):
    """The case-folded key an action is stored under in a dispatch table."""
    return (action_name + ACTION_SUFFIX).lower()


def _default_action_name(handler):
    # index, index_action and indexAction all bind to "index"
    name = handler.__name__
    for suffix in ("_" + ACTION_SUFFIX, ACTION_SUFFIX):
        if len(name) > len(suffix) and name.lower().endswith(suffix.lower()):
            return name[:-len(suffix)]
    return name


def extract_filename(part):
    """
    Get the client-supplied filename from a multipart request part.

    Reads the part's content-disposition header, e.g.
    'form-data; name="file"; filename="a b.txt"', and returns the value of
    the first segment starting with "filename", trimmed and with every
    double quote removed. Returns None if there is no such segment.

    The name is returned unvalidated. It may be empty, contain path
    separators or "..", or control characters: sanitise it before using
    it as a path.
    """
    disposition = part.get_header("content-disposition")
    if disposition is None:
        return None
    for segment in disposition.split(";"):
        if segment.strip().startswith("filename"):
            return segment[segment.find("=") + 1:].strip().replace('"', "")
    return None

# ------------------------------
# View Rendering
# ------------------------------
class ViewRenderer:
    """
    Renders views by composing them into a single fixed layout.

    The view data is copied into the request attributes, the view path is
    stored under MAIN_VIEW_ATTRIBUTE and the layout is rendered with the
    attributes as its context. The layout includes the view, e.g.
    {% include partialViewMain %}.
    """
    def __init__(self, jinja_env, layout_path=LAYOUT_PATH, logger=None):
        self.jinja_env = jinja_env
        self.layout_path = layout_path
        self.logger = logger or logging.getLogger("minvc.view")

    def render(self, request, response, view_path, view_data=None):
        if view_data:
            for key, value in view_data.items():
                request.set_attribute(key, value)
        request.set_attribute(MAIN_VIEW_ATTRIBUTE, view_path)
        self.forward(request, response)

    def forward(self, request, response):
        """
        Render the layout into the response.
        Errors are logged and the response is left as it was.
        """
        context = {"request": request}
        context.update(request.attributes)
        try:
            template = self.jinja_env.get_template(self.layout_path)
            response.write(template.render(context))
        except TemplateError:
            self.logger.exception("Template error rendering %s", self.layout_path)
        except Exception:
            self.logger.exception("Error forwarding to %s", self.layout_path)

# ------------------------------
# Controller
# ------------------------------
class Controller:
    """
    Dispatches requests to action handlers by the last segment of the URL.

    Handlers are plain callables taking (request, response). They are
    registered with the action decorator or add_action and matched
    case-insensitively: a request for /shop/Checkout runs the handler
    bound to "checkout".

        home = app.controller()

        @home.action()
        def index(request, response):
            home.render(request, response, "home/index.html", {"title": "Home"})
    """
    def __init__(self, renderer, not_found_path=NOT_FOUND_VIEW_PATH, logger=None, name=None):
        self.name = name
        self.renderer = renderer
        self.not_found_path = not_found_path
        self.logger = logger or logging.getLogger("minvc.controller")
        self.actions = {}

    def __repr__(self):
        return f"<Controller {self.name or hex(id(self))} actions={sorted(self.actions)}>"

    def action(self, name=None):
        def decorator(handler):
            self.add_action(name, handler)
            return handler
        return decorator

    def add_action(self, name=None, handler=None):
        """
        Register a handler for an action.

          add_action(name, handler):

          name - the action name; defaults to the handler's name with any
                 "Action" or "_action" suffix removed
          handler - callable(request, response)
        """
        if handler is None:
            raise ValueError("Controller.add_action requires a handler callback")
        action_name = name or _default_action_name(handler)
        key = binding_name(action_name)
        if key in self.actions:
            raise ValueError(f"An action named '{action_name}' is already registered.")
        self.actions[key] = handler

    def get_action_handler(self, action_name):
        if action_name is None:
            return None
        return self.actions.get(binding_name(action_name))

    def dispatch(self, request, response):
        """
        Run the action handler for request, or render the not found view.
        Nothing raised while resolving or running a handler escapes.
        """
        try:
            action_name = get_action(request.full_path, self.logger)
        except UnicodeError:
            self.logger.exception("URI error: %s", request.path)
            self.not_found(request, response)
            return response

        handler = self.get_action_handler(action_name)
        if handler is None:
            self.logger.info("No action found for %s", request.path)
            self.not_found(request, response)
            return response

        try:
            handler(request, response)
        except Exception:
            self.logger.exception("Action method error: %s", action_name)
            self.not_found(request, response)
        return response

    def render(self, request, response, view_path, view_data=None):
        self.renderer.render(request, response, view_path, view_data)

    def not_found(self, request, response):
        """Render the not found view with a 404 status."""
        if not response.committed:
            response.status_code = 404
        self.render(request, response, self.not_found_path, {TITLE_ATTRIBUTE: NOT_FOUND_TITLE})

    def redirect_local(self, request, response, path):
        """
        Redirect to path under the application's base path.
        A redirect that cannot be written is logged, not raised.
        """
        try:
            response.redirect(request.script_name + path)
        except ResponseCommittedError:
            self.logger.exception("Redirection error: %s", path)
