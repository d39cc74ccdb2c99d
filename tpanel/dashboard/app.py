"""FastAPI web dashboard application."""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.templating import Jinja2Templates

from ..apps import AppManager
from ..config import Config
from ..errors import PanelError, ValidationError
from ..monitor import SystemMonitor

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"

ACTIONS = ("start", "stop", "restart", "delete")


def is_htmx(request: Request) -> bool:
    """HTMX marks its requests with an HX-Request header."""
    return bool(request.headers.get("hx-request"))


def default_port_for(args: list[Any], fallback: str) -> str:
    """Port shown in the install form: the arg after --port, if concrete."""
    for i, arg in enumerate(args[:-1]):
        if arg == "--port":
            value = str(args[i + 1])
            return fallback if "{{" in value else value
    return fallback


async def read_user_config(request: Request) -> dict[str, Any]:
    """Parse the install request body, JSON or form-encoded.

    Empty form fields are dropped so they fall back to registry defaults.
    """
    content_type = request.headers.get("content-type", "")

    if "application/json" in content_type:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ValidationError(f"Invalid JSON body: {e}") from e
        if body is None:
            return {}
        if not isinstance(body, dict):
            raise ValidationError("Install configuration must be a JSON object")
        return body

    if "form" in content_type:
        form = await request.form()
        return {k: v for k, v in form.items() if isinstance(v, str) and v.strip()}

    return {}


def create_app(
    config: Config,
    manager: AppManager,
    monitor: SystemMonitor | None = None,
) -> FastAPI:
    """Create the FastAPI dashboard application.

    Args:
        config: Application configuration.
        manager: AppManager handling installs and lifecycle actions.
        monitor: Optional SystemMonitor for host telemetry.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title=config.server.title,
        description="Local dashboard for installing and supervising background apps",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.config = config
    app.state.manager = manager
    app.state.monitor = monitor

    # Set up Jinja2 templates
    templates = Jinja2Templates(directory=str(TEMPLATE_DIR))

    def render(request: Request, name: str, status_code: int = 200, **context: Any) -> Response:
        return templates.TemplateResponse(
            request, name, {"title": config.server.title, **context}, status_code=status_code
        )

    async def installed_with_status() -> list[dict[str, Any]]:
        """Installed records annotated with the supervisor's live status."""
        installed = (await manager.get_all_apps())["installed"]
        statuses = await manager.process_statuses()
        return [
            {**record, "status": statuses.get(record["id"], record.get("status") or "stopped")}
            for record in installed
        ]

    async def app_list_fragment(request: Request) -> Response:
        return render(request, "partials/app_list.html", apps=await installed_with_status())

    # ==================== Errors ====================

    @app.exception_handler(PanelError)
    async def panel_error_handler(request: Request, exc: PanelError):
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
        if is_htmx(request):
            return render(request, "partials/error.html", status_code=exc.status_code, error=str(exc))
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": str(exc)},
        )

    # ==================== HTML Routes ====================

    @app.get("/", response_class=HTMLResponse)
    async def index(request: Request):
        """Main dashboard page."""
        return render(request, "index.html", page="index")

    @app.get("/apps", response_class=HTMLResponse)
    async def apps_page(request: Request):
        """Installed apps and catalog page."""
        return render(request, "apps.html", page="apps")

    @app.get("/system", response_class=HTMLResponse)
    async def system_page(request: Request):
        """Host stats and process list page."""
        return render(request, "system.html", page="system")

    # ==================== Apps API ====================

    @app.get("/api/apps")
    async def api_apps(request: Request):
        """Registry and installed apps; HTMX gets the installed list."""
        if is_htmx(request):
            return await app_list_fragment(request)
        return {"success": True, "data": await manager.get_all_apps()}

    @app.get("/api/apps/registry")
    async def api_registry(request: Request):
        """Catalog of installable apps."""
        registry = (await manager.get_all_apps())["registry"]
        if is_htmx(request):
            return render(request, "partials/registry_list.html", apps=registry)
        return {"success": True, "data": registry}

    @app.get("/api/apps/registry/{app_id}/form", response_class=HTMLResponse)
    async def api_install_form(request: Request, app_id: str):
        """HTML fragment for the install dialog."""
        entry = manager.get_registry_entry(app_id)
        default_port = default_port_for(
            entry.config.get("args") or [], manager.default_port
        )
        return render(
            request, "partials/install_modal.html", app=entry, default_port=default_port
        )

    @app.post("/api/apps/{app_id}/install")
    async def api_install(request: Request, app_id: str):
        """Install an app from the registry with optional overrides."""
        user_config = await read_user_config(request)
        installed = await manager.install_app(app_id, user_config)
        if is_htmx(request):
            return await app_list_fragment(request)
        return {"success": True, "data": installed.to_dict()}

    @app.post("/api/apps/{app_id}/{action}")
    async def api_app_action(request: Request, app_id: str, action: str):
        """Start, stop, restart or delete an installed app."""
        if action not in ACTIONS:
            if is_htmx(request):
                return render(request, "partials/error.html", status_code=400, error="Invalid action")
            return JSONResponse(status_code=400, content={"success": False, "error": "Invalid action"})

        if action == "start":
            await manager.start_app(app_id)
        elif action == "stop":
            await manager.stop_app(app_id)
        elif action == "restart":
            await manager.restart_app(app_id)
        else:
            await manager.uninstall_app(app_id)

        if is_htmx(request):
            return await app_list_fragment(request)
        return {"success": True, "data": await manager.get_all_apps()}

    # ==================== System API ====================

    @app.get("/api/system/stats")
    async def api_system_stats(request: Request):
        """Host stats plus network info."""
        if not monitor:
            return JSONResponse(
                status_code=503, content={"success": False, "error": "No system monitor available"}
            )

        stats = await monitor.get_system_stats()
        network = await monitor.get_network_info()

        if is_htmx(request):
            return render(request, "partials/stats.html", stats=stats, network=network)
        return {"success": True, "data": {"stats": stats, "network": network}}

    @app.get("/api/system/processes")
    async def api_processes(request: Request, page: int = 1):
        """One page of the process list, busiest first."""
        if not monitor:
            return JSONResponse(
                status_code=503, content={"success": False, "error": "No system monitor available"}
            )

        page = max(page, 1)
        limit = config.monitor.process_page_size
        processes = await monitor.get_process_list(limit=limit, offset=(page - 1) * limit)

        if is_htmx(request):
            return render(
                request,
                "partials/processes.html",
                processes=processes,
                page=page,
                has_next=len(processes) == limit,
            )
        return {"success": True, "data": processes}

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint.

        Always returns 200 OK even if components are unavailable.
        """
        health = {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "components": {
                "monitor": monitor is not None,
                "install_types": manager.installers.install_types,
            },
        }

        try:
            apps = await manager.get_all_apps()
            health["components"]["registry_count"] = len(apps["registry"])
            health["components"]["installed_count"] = len(apps["installed"])
        except PanelError as e:
            health["components"]["store_error"] = str(e)

        return health

    return app
