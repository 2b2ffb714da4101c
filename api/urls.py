from django.urls import path, include
from rest_framework.routers import DefaultRouter

# Users
from users.views import (
    CustomerSignupView,
    UserProfileView,
    UserProfileUpdateView,
    UnifiedLoginView,
    ChangePasswordView,
    UserViewSet,
)

# Common
from common.views import (
    CategoryViewSet,
    WishlistViewSet,
)

# Products
from products.views import ProductViewSet

# Inventory
from inventory.views import InventoryViewSet

# Orders
from orders.views import (
    OrderViewSet,
    CartViewSet,
    OrderReceiptView,
    BulkOrderStatusUpdateView,
)

# Coupons
from coupons.views import CouponViewSet

# Payments
from payments.views import (
    StripeWebhookView,
    CheckoutViewSet,
)

# Reviews
from review.views import ReviewViewSet

# Search
from search import views as search_views

# Dashboard
from dashboard.views import (
    DashboardAnalyticsView,
    DashboardStatsView,
    OverviewView,
    SalesTrendsView,
    TopProductsView,
    RevenueByCategoryView,
    RevenueByPaymentMethodView,
    OrderStatusBreakdownView,
    CustomerSegmentsView,
    VendorPerformanceView,
    VendorDashboardView,
    VendorSalesOverviewView,
    LatestOrdersView,
    LowStockAlertsView,
)


# -------- Router config --------
router = DefaultRouter()

# Users
router.register("users", UserViewSet, basename="user")

# Common
router.register("categories", CategoryViewSet, basename="category")
router.register("wishlist", WishlistViewSet, basename="wishlist")

# Catalog
router.register("products", ProductViewSet, basename="product")
router.register("inventory", InventoryViewSet, basename="inventory")
router.register("reviews", ReviewViewSet, basename="review")

# Orders & Cart
router.register("cart", CartViewSet, basename="cart")
router.register("orders", OrderViewSet, basename="order")
router.register("coupons", CouponViewSet, basename="coupon")
router.register("checkout", CheckoutViewSet, basename="checkout")


urlpatterns = [

    path("login/", UnifiedLoginView.as_view(), name="user-login"),
    path("signup/customer/", CustomerSignupView.as_view(), name="signup-customer"),
    path("profile/", UserProfileView.as_view(), name="user-profile"),
    path("profile/update/", UserProfileUpdateView.as_view(), name="profile-update"),
    path("change-password/", ChangePasswordView.as_view(), name="change-password"),

    path("orders/receipt/<str:order_number>/", OrderReceiptView.as_view(), name="order-receipt"),

    # Search
    path("search/", search_views.enhanced_search, name="search"),
    path("search/autocomplete/", search_views.autocomplete, name="search-autocomplete"),
    path("search/suggestions/", search_views.suggestions, name="search-suggestions"),
    path("search/trending/", search_views.trending, name="search-trending"),

    # Vendor Dashboard
    path("vendor/dashboard/", VendorDashboardView.as_view(), name="vendor-dashboard"),
    path("vendor/sales-overview/", VendorSalesOverviewView.as_view(), name="vendor-sales-overview"),
    path("vendor/latest-orders/", LatestOrdersView.as_view(), name="vendor-latest-orders"),
    path("vendor/alerts/low-stock/", LowStockAlertsView.as_view(), name="vendor-low-stock-alerts"),

    # Admin analytics
    path("admin/stats/", DashboardStatsView.as_view(), name="dashboard-stats"),
    path("admin/analytics/", DashboardAnalyticsView.as_view(), name="analytics-dashboard"),
    path("admin/analytics/overview/", OverviewView.as_view(), name="analytics-overview"),
    path("admin/analytics/sales-trends/", SalesTrendsView.as_view(), name="analytics-sales-trends"),
    path("admin/analytics/top-products/", TopProductsView.as_view(), name="analytics-top-products"),
    path("admin/analytics/revenue-by-category/", RevenueByCategoryView.as_view(), name="analytics-revenue-category"),
    path("admin/analytics/revenue-by-payment-method/", RevenueByPaymentMethodView.as_view(),
         name="analytics-revenue-payment-method"),
    path("admin/analytics/order-status/", OrderStatusBreakdownView.as_view(), name="analytics-order-status"),
    path("admin/analytics/customer-segments/", CustomerSegmentsView.as_view(), name="analytics-customer-segments"),
    path("admin/vendor-performance/", VendorPerformanceView.as_view(), name="vendor-performance"),
    path("admin/latest-orders/", LatestOrdersView.as_view(), name="latest-orders"),
    path("admin/alerts/low-stock/", LowStockAlertsView.as_view(), name="low-stock-alerts"),

    # Bulk Operations
    path("admin/bulk/orders/status/", BulkOrderStatusUpdateView.as_view(), name="bulk-order-status"),

    # Stripe webhook
    path("stripe/webhook/", StripeWebhookView.as_view(), name="stripe-webhook"),

    # Include router URLs
    path("", include(router.urls)),
]
