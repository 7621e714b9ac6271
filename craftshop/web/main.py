from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import Any, List, Optional
from urllib.parse import quote, urlparse

from fastapi import Depends, FastAPI, Form, HTTPException, Query, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from craftshop.cart.provider import CartProvider
from craftshop.cart.store import CartStore
from craftshop.config import Settings, settings as default_settings
from craftshop.constants import AVAILABILITY_ALL, CATEGORY_ALL, ORDER_STATUSES
from craftshop.db.sqlite import LocalStorage, saved_cart_count
from craftshop.services.backend import BackendClient, BackendError, create_backend
from craftshop.services.catalog import CatalogService, all_tags, filter_products, split_list
from craftshop.services.dashboard import dashboard_stats
from craftshop.services.invoice_pdf import generate_invoice_pdf
from craftshop.services.orders import OrderService, compose_status_email, status_step
from craftshop.services.pricing import checkout_total, shipping_fee
from craftshop.services.site_settings import SiteSettingsService, settings_from_form
from craftshop.utils.formatters import format_date, money
from craftshop.utils.validators import is_email, parse_price, required_field_errors

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

ADMIN_COOKIE = "craftshop_admin"
SESSION_ID_RE = re.compile(r"^[0-9a-f]{32}$")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money
templates.env.filters["date"] = format_date


# ---------------- dependencies ----------------

def get_session_id(request: Request) -> str:
    return request.state.session_id


def get_cart(request: Request, session_id: str = Depends(get_session_id)) -> CartStore:
    return request.app.state.carts.get(session_id)


def get_catalog(request: Request) -> CatalogService:
    return request.app.state.catalog


def get_orders(request: Request) -> OrderService:
    return request.app.state.orders


def get_site(request: Request) -> SiteSettingsService:
    return request.app.state.site


def require_admin(request: Request) -> dict:
    token = request.cookies.get(ADMIN_COOKIE)
    if not token:
        raise HTTPException(status_code=303, headers={"Location": "/login"})
    try:
        return request.app.state.backend.get_user(token)
    except BackendError as e:
        logger.info("Admin session rejected: %s", e)
        raise HTTPException(status_code=303, headers={"Location": "/login"})


def _render(request: Request, name: str, ctx: dict[str, Any], status_code: int = 200) -> HTMLResponse:
    cart = get_cart(request, request.state.session_id)
    subtotal = cart.get_cart_total()
    base = {
        "request": request,
        "cart": cart,
        "cart_subtotal": subtotal,
        "cart_shipping": shipping_fee(subtotal),
        "cart_total": checkout_total(subtotal),
        "site": request.app.state.site.get_site_settings(),
        "message": request.query_params.get("msg", ""),
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base, status_code=status_code)


def _back(request: Request, next_url: str = "", default: str = "/shop") -> RedirectResponse:
    # only same-site paths
    target = next_url or request.headers.get("referer") or default
    parsed = urlparse(target)
    if parsed.netloc and parsed.netloc != request.url.netloc:
        return RedirectResponse(url=default, status_code=303)
    path = parsed.path or default
    if not path.startswith("/") or path.startswith("//"):
        path = default
    if parsed.query:
        path = f"{path}?{parsed.query}"
    return RedirectResponse(url=path, status_code=303)


def _msg(url: str, text: str) -> RedirectResponse:
    return RedirectResponse(url=f"{url}?msg={quote(text)}", status_code=303)


def _wants_json(request: Request) -> bool:
    return "application/json" in request.headers.get("accept", "")


def _product_from_form(
    name: str,
    price: str,
    image: str,
    category: str,
    tags: str,
    is_new: Optional[str],
    description: str,
    features: str,
    care_instructions: str,
    additional_images: str,
) -> dict[str, Any]:
    return {
        "name": name.strip(),
        "price": parse_price(price),
        "image": image.strip(),
        "category": category.strip(),
        "tags": split_list(tags),
        "is_new": bool(is_new),
        "description": description.strip(),
        "features": split_list(features, "\n"),
        "care_instructions": split_list(care_instructions, "\n"),
        "additional_images": split_list(additional_images, "\n"),
    }


# ---------------- app ----------------

def create_app(
    cfg: Settings | None = None,
    storage: LocalStorage | None = None,
    backend: BackendClient | None = None,
) -> FastAPI:
    cfg = cfg or default_settings
    storage = storage or LocalStorage(cfg.db_path)
    backend = backend or create_backend(cfg)

    app = FastAPI(title=f"{cfg.site_name} Shop")
    app.state.settings = cfg
    app.state.storage = storage
    app.state.backend = backend
    app.state.carts = CartProvider(storage, decimals=cfg.decimals, max_size=cfg.max_carts)
    app.state.catalog = CatalogService(storage, backend)
    app.state.orders = OrderService(storage, backend)
    app.state.site = SiteSettingsService(storage, backend)

    if STATIC_DIR.exists():
        app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")

    @app.on_event("startup")
    def _startup() -> None:
        logging.basicConfig(
            level=cfg.log_level,
            format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        )
        storage.init_db()

    @app.middleware("http")
    async def _session(request: Request, call_next):
        sid = request.cookies.get(cfg.session_cookie)
        # only ids minted here (uuid4 hex) are accepted
        if sid and not SESSION_ID_RE.match(sid):
            sid = None
        is_new = not sid
        request.state.session_id = sid or uuid.uuid4().hex
        response = await call_next(request)
        if is_new:
            response.set_cookie(
                cfg.session_cookie,
                request.state.session_id,
                max_age=60 * 60 * 24 * 365,
                httponly=True,
                samesite="lax",
            )
        return response

    _storefront_routes(app)
    _cart_routes(app)
    _admin_routes(app)
    return app


# ---------------- storefront ----------------

def _storefront_routes(app: FastAPI) -> None:
    @app.get("/", response_class=HTMLResponse)
    def index(request: Request, catalog: CatalogService = Depends(get_catalog)):
        products = catalog.get_products()
        featured = [p for p in products if p["is_new"]] or products
        return _render(request, "index.html", {"products": featured[:8]})

    @app.get("/shop", response_class=HTMLResponse)
    def shop(
        request: Request,
        category: str = CATEGORY_ALL,
        tag: List[str] = Query(default=[]),
        q: str = "",
        availability: str = AVAILABILITY_ALL,
        catalog: CatalogService = Depends(get_catalog),
    ):
        products = catalog.get_products()
        rows = filter_products(products, category=category, tags=tag, query=q, availability=availability)
        return _render(
            request,
            "shop.html",
            {
                "products": rows,
                "categories": [CATEGORY_ALL] + catalog.category_names(),
                "tags": all_tags(products),
                "selected_category": category,
                "selected_tags": tag,
                "query": q,
                "availability": availability,
            },
        )

    @app.get("/product/{product_id}", response_class=HTMLResponse)
    def product_detail(request: Request, product_id: str, catalog: CatalogService = Depends(get_catalog)):
        product = catalog.get_product(product_id)
        if not product:
            return _render(request, "not_found.html", {"what": "Product"}, status_code=404)
        related = [
            p for p in catalog.get_products()
            if p["category"] == product["category"] and p["id"] != product["id"]
        ]
        return _render(request, "product.html", {"product": product, "related": related[:4]})

    @app.get("/contact", response_class=HTMLResponse)
    def contact_get(request: Request):
        return _render(request, "contact.html", {"errors": {}, "form": {}, "sent": False})

    @app.post("/contact", response_class=HTMLResponse)
    def contact_post(
        request: Request,
        name: str = Form(""),
        email: str = Form(""),
        subject: str = Form(""),
        message: str = Form(""),
    ):
        form = {"name": name, "email": email, "subject": subject, "message": message}
        errors = required_field_errors(form, ("name", "email", "message"))
        if "email" not in errors and not is_email(email):
            errors["email"] = "Enter a valid email address"
        if errors:
            return _render(request, "contact.html", {"errors": errors, "form": form, "sent": False})
        logger.info("Contact message from %s: %s", email, subject or "(no subject)")
        return _render(request, "contact.html", {"errors": {}, "form": {}, "sent": True})

    @app.get("/checkout", response_class=HTMLResponse)
    def checkout_get(request: Request):
        return _render(request, "checkout.html", {"errors": {}, "form": {}})

    @app.post("/checkout", response_class=HTMLResponse)
    def checkout_post(
        request: Request,
        email: str = Form(""),
        name: str = Form(""),
        address: str = Form(""),
        phone: str = Form(""),
        city: str = Form(""),
        notes: str = Form(""),
        cart: CartStore = Depends(get_cart),
        orders: OrderService = Depends(get_orders),
        session_id: str = Depends(get_session_id),
    ):
        form = {"email": email, "name": name, "address": address, "phone": phone, "city": city, "notes": notes}
        ok, result = orders.place_order(cart, form, session_id)
        if not ok:
            if _wants_json(request):
                return JSONResponse({"errors": result}, status_code=400)
            return _render(request, "checkout.html", {"errors": result, "form": form})
        cart.close_cart()
        if _wants_json(request):
            return JSONResponse({"order": result})
        return _render(request, "order_confirmed.html", {"order": result})

    @app.get("/order-tracking", response_class=HTMLResponse)
    def order_tracking(
        request: Request,
        order_id: Optional[str] = None,
        orders: OrderService = Depends(get_orders),
        session_id: str = Depends(get_session_id),
    ):
        order = None
        error = ""
        if order_id is None:
            order_id = orders.latest_order_number(session_id)
        elif not order_id.strip():
            error = "Please enter an order ID"
        else:
            order = orders.get_order(order_id)
            if not order:
                error = "Order not found. Please check the order ID and try again."
        return _render(
            request,
            "tracking.html",
            {
                "order_id": order_id,
                "order": order,
                "error": error,
                "step": status_step(order["status"]) if order else 0,
            },
        )


# ---------------- cart ----------------

def _cart_routes(app: FastAPI) -> None:
    @app.get("/cart")
    def cart_json(cart: CartStore = Depends(get_cart)):
        return JSONResponse(cart.to_dict())

    @app.post("/cart/add")
    def cart_add(
        request: Request,
        product_id: str = Form(...),
        quantity: int = Form(1),
        open_cart: bool = Form(True),
        next: str = Form(""),
        cart: CartStore = Depends(get_cart),
        catalog: CatalogService = Depends(get_catalog),
    ):
        product = catalog.get_product(product_id)
        if not product:
            raise HTTPException(status_code=404, detail="Product not found")
        if product["is_sold_out"]:
            return _back(request, next)

        cart.add_item(
            {"id": product["id"], "name": product["name"], "price": product["price"], "image": product["image"]},
            quantity,
        )
        if open_cart:
            cart.open_cart()
        return _back(request, next)

    @app.post("/cart/remove")
    def cart_remove(
        request: Request,
        product_id: str = Form(...),
        next: str = Form(""),
        cart: CartStore = Depends(get_cart),
    ):
        cart.remove_item(product_id)
        return _back(request, next)

    @app.post("/cart/update")
    def cart_update(
        request: Request,
        product_id: str = Form(...),
        quantity: int = Form(...),
        next: str = Form(""),
        cart: CartStore = Depends(get_cart),
    ):
        cart.update_quantity(product_id, quantity)
        return _back(request, next)

    @app.post("/cart/clear")
    def cart_clear(request: Request, next: str = Form(""), cart: CartStore = Depends(get_cart)):
        cart.clear_cart()
        return _back(request, next)

    @app.post("/cart/open")
    def cart_open(request: Request, next: str = Form(""), cart: CartStore = Depends(get_cart)):
        cart.open_cart()
        return _back(request, next)

    @app.post("/cart/close")
    def cart_close(request: Request, next: str = Form(""), cart: CartStore = Depends(get_cart)):
        cart.close_cart()
        return _back(request, next)


# ---------------- admin ----------------

def _admin_routes(app: FastAPI) -> None:
    @app.get("/login", response_class=HTMLResponse)
    def login_get(request: Request):
        return _render(request, "login.html", {"error": "", "email": ""})

    @app.post("/login")
    def login_post(request: Request, email: str = Form(""), password: str = Form("")):
        try:
            session = request.app.state.backend.sign_in(email.strip(), password)
        except BackendError as e:
            logger.info("Admin sign-in failed for %s: %s", email, e)
            return _render(request, "login.html", {"error": "Invalid email or password", "email": email})

        response = RedirectResponse(url="/admin", status_code=303)
        response.set_cookie(
            ADMIN_COOKIE,
            session["access_token"],
            max_age=int(session.get("expires_in") or 3600),
            httponly=True,
            samesite="lax",
        )
        return response

    @app.post("/logout")
    def logout():
        response = RedirectResponse(url="/", status_code=303)
        response.delete_cookie(ADMIN_COOKIE)
        return response

    @app.get("/admin", response_class=HTMLResponse)
    def admin_dashboard(
        request: Request,
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
        orders: OrderService = Depends(get_orders),
    ):
        stats = dashboard_stats(orders.list_orders(), catalog.get_products())
        return _render(
            request,
            "admin/dashboard.html",
            {
                "stats": stats,
                "user": user,
                "saved_carts": saved_cart_count(request.app.state.storage),
                "pending_sync": orders.pending_count() + catalog.pending_products(),
            },
        )

    # ---------------- products ----------------

    @app.get("/admin/products", response_class=HTMLResponse)
    def admin_products(
        request: Request,
        q: str = "",
        edit: str = "",
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        products = catalog.get_products()
        if q:
            products = [p for p in products if q.lower() in p["name"].lower()]
        editing = catalog.get_product(edit) if edit else None
        return _render(
            request,
            "admin/products.html",
            {
                "products": products,
                "query": q,
                "editing": editing,
                "categories": catalog.category_names(),
            },
        )

    @app.post("/admin/products/add")
    def admin_products_add(
        name: str = Form(""),
        price: str = Form("0"),
        image: str = Form(""),
        category: str = Form(""),
        tags: str = Form(""),
        is_new: Optional[str] = Form(None),
        description: str = Form(""),
        features: str = Form(""),
        care_instructions: str = Form(""),
        additional_images: str = Form(""),
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        try:
            data = _product_from_form(
                name, price, image, category, tags, is_new,
                description, features, care_instructions, additional_images,
            )
        except ValueError:
            return _msg("/admin/products", "Invalid price")
        ok, result = catalog.create_product(data)
        return _msg("/admin/products", "Product added" if ok else result)

    @app.post("/admin/products/{product_id}/edit")
    def admin_products_edit(
        product_id: str,
        name: str = Form(""),
        price: str = Form("0"),
        image: str = Form(""),
        category: str = Form(""),
        tags: str = Form(""),
        is_new: Optional[str] = Form(None),
        description: str = Form(""),
        features: str = Form(""),
        care_instructions: str = Form(""),
        additional_images: str = Form(""),
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        try:
            data = _product_from_form(
                name, price, image, category, tags, is_new,
                description, features, care_instructions, additional_images,
            )
        except ValueError:
            return _msg("/admin/products", "Invalid price")
        ok, err = catalog.update_product(product_id, data)
        return _msg("/admin/products", "Product updated" if ok else err)

    @app.post("/admin/products/{product_id}/delete")
    def admin_products_delete(
        product_id: str,
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        ok, err = catalog.delete_product(product_id)
        return _msg("/admin/products", "Product deleted" if ok else err)

    @app.post("/admin/products/{product_id}/sold-out")
    def admin_products_sold_out(
        product_id: str,
        sold_out: bool = Form(...),
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        ok, err = catalog.set_sold_out(product_id, sold_out)
        return _msg("/admin/products", "OK" if ok else err)

    # ---------------- categories ----------------

    @app.get("/admin/categories", response_class=HTMLResponse)
    def admin_categories(
        request: Request,
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        return _render(request, "admin/categories.html", {"categories": catalog.list_categories()})

    @app.post("/admin/categories/add")
    def admin_categories_add(
        name: str = Form(""),
        slug: str = Form(""),
        description: str = Form(""),
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        ok, result = catalog.create_category(name, description, slug)
        return _msg("/admin/categories", "Category added" if ok else result)

    @app.post("/admin/categories/{category_id}/edit")
    def admin_categories_edit(
        category_id: int,
        name: str = Form(""),
        slug: str = Form(""),
        description: str = Form(""),
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        ok, err = catalog.update_category(category_id, name, description, slug)
        return _msg("/admin/categories", "Category updated" if ok else err)

    @app.post("/admin/categories/{category_id}/delete")
    def admin_categories_delete(
        category_id: int,
        user: dict = Depends(require_admin),
        catalog: CatalogService = Depends(get_catalog),
    ):
        ok, err = catalog.delete_category(category_id)
        return _msg("/admin/categories", "Category deleted" if ok else err)

    # ---------------- orders ----------------

    @app.get("/admin/orders", response_class=HTMLResponse)
    def admin_orders(
        request: Request,
        q: str = "",
        user: dict = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
    ):
        return _render(
            request,
            "admin/orders.html",
            {
                "orders": orders.list_orders(q),
                "query": q,
                "statuses": ORDER_STATUSES,
                "pending_sync": orders.pending_count(),
            },
        )

    @app.post("/admin/orders/sync")
    def admin_orders_sync(
        user: dict = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
        catalog: CatalogService = Depends(get_catalog),
    ):
        synced = orders.sync_pending_orders()
        products = catalog.sync_pending_products()
        return _msg("/admin/orders", f"Synced {synced} orders, {products} products")

    @app.get("/admin/orders/{order_number}", response_class=HTMLResponse)
    def admin_order_detail(
        request: Request,
        order_number: str,
        user: dict = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
        site: SiteSettingsService = Depends(get_site),
    ):
        order = orders.get_order(order_number)
        if not order:
            return _render(request, "not_found.html", {"what": "Order"}, status_code=404)
        subject, body = compose_status_email(order, site.get_site_settings()["companyName"])
        return _render(
            request,
            "admin/order_detail.html",
            {"order": order, "statuses": ORDER_STATUSES, "email_subject": subject, "email_body": body},
        )

    @app.post("/admin/orders/{order_number}/status")
    def admin_order_status(
        order_number: str,
        status: str = Form(...),
        user: dict = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
    ):
        ok, err = orders.update_order_status(order_number, status)
        return _msg("/admin/orders", f"{order_number}: {status}" if ok else err)

    @app.get("/admin/orders/{order_number}/invoice", response_class=FileResponse)
    def admin_order_invoice(
        request: Request,
        order_number: str,
        user: dict = Depends(require_admin),
        orders: OrderService = Depends(get_orders),
        site: SiteSettingsService = Depends(get_site),
    ):
        order = orders.get_order(order_number)
        if not order:
            raise HTTPException(status_code=404, detail="Order not found")
        path = generate_invoice_pdf(
            order, site.get_site_settings()["companyName"], request.app.state.settings.export_dir
        )
        return FileResponse(path, filename=Path(path).name, media_type="application/pdf")

    # ---------------- settings ----------------

    @app.get("/admin/settings", response_class=HTMLResponse)
    def admin_settings(request: Request, user: dict = Depends(require_admin)):
        return _render(request, "admin/settings.html", {})

    @app.post("/admin/settings")
    async def admin_settings_save(
        request: Request,
        user: dict = Depends(require_admin),
        site: SiteSettingsService = Depends(get_site),
    ):
        form = await request.form()
        site.save_site_settings(settings_from_form({k: str(v) for k, v in form.items()}))
        return _msg("/admin/settings", "Settings saved")


app = create_app()
