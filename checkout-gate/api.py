"""FastAPI routes for the checkout gate.

Routes (paths come from ``Settings``)
-------------------------------------
POST    VERIFY_PATH        Asynchronous password submission (JSON result)
GET     SETTINGS_PATH      Current configuration and protection status
PUT     SETTINGS_PATH      Replace the configuration
DELETE  SETTINGS_PATH      Forget all configuration

Storefront placeholder routes
-----------------------------
GET/POST GUARDED_PATH                  The guarded checkout page
GET      CONFIRMATION_PATH/{order_id}  Order-received confirmation page
GET/POST ASYNC_PATH/{action}           Fragment refresh polled by the checkout page
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import HTMLResponse

from config import Settings
from gate import CheckoutGate
from middleware import (
    build_context,
    read_form,
    render_decision,
    require_admin,
)
from models import SettingsStatus, SettingsUpdate
from store import SettingsStoreError, SettingsValidationError


def get_gate(request: Request) -> CheckoutGate:
    return request.app.state.gate


def get_settings(request: Request) -> Settings:
    return request.app.state.gate_settings


def build_gate_router(settings: Settings) -> APIRouter:
    """Routes that belong to the gate itself."""
    router = APIRouter(tags=["checkout-gate"])

    async def verify_password(request: Request) -> Response:
        """Check a password posted by the challenge page's script."""
        gate = get_gate(request)
        form = await read_form(request)
        ctx = build_context(request, get_settings(request), form)
        return render_decision(gate.verify_async(ctx), request,
                               get_settings(request))

    def read_settings(request: Request) -> SettingsStatus:
        """Show the configuration as seen from the requesting host."""
        return get_gate(request).status(request.headers.get("host", ""))

    def save_settings(payload: SettingsUpdate, request: Request) -> SettingsStatus:
        """Replace the protected hosts; a blank password keeps the old one."""
        gate = get_gate(request)
        try:
            gate.store.save(payload, gate.submissions.hasher)
        except SettingsValidationError as e:
            raise HTTPException(status_code=422, detail=str(e))
        except SettingsStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return gate.status(request.headers.get("host", ""))

    def delete_settings(request: Request) -> Response:
        """Remove every stored setting."""
        try:
            get_gate(request).store.reset()
        except SettingsStoreError as e:
            raise HTTPException(status_code=503, detail=str(e))
        return Response(status_code=204)

    router.add_api_route(settings.VERIFY_PATH, verify_password,
                         methods=["POST"])
    admin = [Depends(require_admin)]
    router.add_api_route(settings.SETTINGS_PATH, read_settings,
                         methods=["GET"], response_model=SettingsStatus,
                         dependencies=admin)
    router.add_api_route(settings.SETTINGS_PATH, save_settings,
                         methods=["PUT"], response_model=SettingsStatus,
                         dependencies=admin)
    router.add_api_route(settings.SETTINGS_PATH, delete_settings,
                         methods=["DELETE"], status_code=204,
                         dependencies=admin)
    return router


def build_storefront_router(settings: Settings) -> APIRouter:
    """Stand-in pages for the shop the gate sits in front of."""
    router = APIRouter(tags=["storefront"])

    def checkout_page() -> HTMLResponse:
        return HTMLResponse("<h1>Checkout</h1>")

    def order_received(order_id: str) -> HTMLResponse:
        return HTMLResponse("<h1>Order received</h1>")

    def checkout_fragment(action: str) -> dict:
        return {"action": action, "fragments": {}}

    router.add_api_route(settings.GUARDED_PATH, checkout_page,
                         methods=["GET", "POST"], response_class=HTMLResponse)
    router.add_api_route(settings.CONFIRMATION_PATH + "/{order_id}",
                         order_received, methods=["GET"],
                         response_class=HTMLResponse)
    router.add_api_route(settings.ASYNC_PATH + "/{action}", checkout_fragment,
                         methods=["GET", "POST"])
    return router
