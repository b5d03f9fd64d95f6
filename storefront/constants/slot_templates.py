"""
Default slot layouts per page type.

A store that has never edited a page gets a draft seeded from these
templates, and the storefront renders them when a stored configuration is
missing or unreadable. Every slot here is platform-owned (`isCustom` is
false), so operators can rearrange but not delete them.
"""

import copy
from typing import Any


def _slot(
    slot_id: str,
    slot_type: str,
    col: int,
    row: int,
    parent_id: str | None = None,
    component: str | None = None,
    class_name: str = "",
    display_name: str | None = None,
) -> dict[str, Any]:
    node: dict[str, Any] = {
        "id": slot_id,
        "type": slot_type,
        "position": {"col": col, "row": row},
        "parentId": parent_id,
        "isCustom": False,
        "className": class_name,
        "styles": {},
        "metadata": {"displayName": display_name or slot_id.replace("_", " ").title()},
    }
    if component:
        node["component"] = component
    return node


def _layout(page_name: str, slot_type: str, *slots: dict[str, Any]) -> dict[str, Any]:
    return {
        "slots": {slot["id"]: slot for slot in slots},
        "metadata": {"pageName": page_name, "slotType": slot_type},
    }


DEFAULT_TEMPLATES: dict[str, dict[str, Any]] = {
    "cart": _layout(
        "Cart",
        "cart_layout",
        _slot("flash_message", "component", 0, 0, component="FlashMessage"),
        _slot("header", "container", 0, 1, class_name="cart-header"),
        _slot("header_title", "text", 0, 0, parent_id="header", display_name="Cart Title"),
        _slot("empty_cart", "component", 0, 2, component="EmptyCart"),
        _slot("cart_items", "container", 0, 3, class_name="cart-items"),
        _slot("coupon", "component", 1, 3, component="CouponForm"),
        _slot("order_summary", "component", 1, 4, component="OrderSummary"),
        _slot("recommendations", "container", 0, 5),
    ),
    "category": _layout(
        "Category",
        "category_layout",
        _slot("breadcrumbs", "component", 0, 0, component="Breadcrumbs"),
        _slot("category_header", "container", 0, 1),
        _slot("category_title", "text", 0, 0, parent_id="category_header"),
        _slot("category_description", "text", 0, 1, parent_id="category_header"),
        _slot("filters", "component", 0, 2, component="LayeredNavigation"),
        _slot("sorting", "component", 1, 2, component="SortSelector"),
        _slot("product_grid", "component", 1, 3, component="ProductGrid"),
        _slot("pagination", "component", 1, 4, component="Pagination"),
    ),
    "product": _layout(
        "Product Detail",
        "product_layout",
        _slot("cms_block_product_above", "component", 0, 0, component="CmsBlockRenderer"),
        _slot("breadcrumbs", "component", 0, 1, component="Breadcrumbs"),
        _slot("product_gallery", "component", 0, 2, component="ProductGallery"),
        _slot("product_info", "container", 1, 2),
        _slot("product_title", "text", 0, 0, parent_id="product_info"),
        _slot("product_price", "component", 0, 1, parent_id="product_info", component="ProductPrice"),
        _slot("add_to_cart", "component", 0, 2, parent_id="product_info", component="AddToCartButton"),
        _slot("product_tabs", "component", 0, 3, component="ProductTabs"),
        _slot("related_products", "container", 0, 4),
    ),
    "header": _layout(
        "Header",
        "header_layout",
        _slot("logo", "component", 0, 0, component="StoreLogo"),
        _slot("navigation", "component", 1, 0, component="CategoryNav"),
        _slot("search", "component", 2, 0, component="SearchBar"),
        _slot("user_account", "component", 3, 0, component="UserAccountMenu"),
        _slot("mini_cart", "component", 4, 0, component="MiniCart"),
    ),
    "checkout": _layout(
        "Checkout",
        "checkout_layout",
        _slot("checkout_steps", "component", 0, 0, component="CheckoutSteps"),
        _slot("shipping_address", "component", 0, 1, component="AddressForm"),
        _slot("shipping_method", "component", 0, 2, component="ShippingMethods"),
        _slot("payment_method", "component", 0, 3, component="PaymentMethods"),
        _slot("order_summary", "component", 1, 1, component="OrderSummary"),
        _slot("place_order", "component", 1, 2, component="PlaceOrderButton"),
    ),
    "success": _layout(
        "Order Success",
        "success_layout",
        _slot("success_header", "text", 0, 0),
        _slot("order_details", "component", 0, 1, component="OrderDetails"),
        _slot("continue_shopping", "component", 0, 2, component="ContinueShoppingButton"),
    ),
}


def get_default_template(page_type: str) -> dict[str, Any]:
    """Return a fresh copy of the default layout; unknown page types get an empty slot map."""
    template = DEFAULT_TEMPLATES.get(page_type)
    if template is None:
        return {"slots": {}, "metadata": {"pageName": page_type, "slotType": f"{page_type}_layout"}}
    return copy.deepcopy(template)
