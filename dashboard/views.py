from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework.permissions import IsAuthenticated
from rest_framework import status
from drf_yasg.utils import swagger_auto_schema

from dashboard import utils as analytics
from dashboard.serializers import DateRangeSerializer, LatestOrderSerializer, StockAlertSerializer
from inventory.utils import get_low_stock_alerts
from users.permissions import IsRoleAdmin, IsVendor, is_admin_user, is_vendor_user


class AnalyticsBaseView(APIView):
    permission_classes = [IsRoleAdmin]

    def get_params(self, request):
        serializer = DateRangeSerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)
        params = serializer.validated_data
        start, end = analytics.parse_date_range(
            params["start_date"].isoformat() if params.get("start_date") else None,
            params["end_date"].isoformat() if params.get("end_date") else None,
        )
        return start, end, params


# -------- Admin analytics --------

class DashboardAnalyticsView(AnalyticsBaseView):
    @swagger_auto_schema(query_serializer=DateRangeSerializer)
    def get(self, request):
        start, end, params = self.get_params(request)
        data = analytics.get_dashboard_analytics(start, end, params["period"])
        data["date_range"] = {"start_date": start, "end_date": end}
        return Response(data)


class DashboardStatsView(APIView):
    permission_classes = [IsRoleAdmin]

    def get(self, request):
        return Response(analytics.get_admin_summary())


class OverviewView(AnalyticsBaseView):
    @swagger_auto_schema(query_serializer=DateRangeSerializer)
    def get(self, request):
        start, end, _ = self.get_params(request)
        return Response(analytics.get_overview(start, end))


class SalesTrendsView(AnalyticsBaseView):
    @swagger_auto_schema(query_serializer=DateRangeSerializer)
    def get(self, request):
        start, end, params = self.get_params(request)
        return Response({
            "period": params["period"],
            "results": analytics.get_sales_trends(start, end, params["period"]),
        })


class TopProductsView(AnalyticsBaseView):
    @swagger_auto_schema(query_serializer=DateRangeSerializer)
    def get(self, request):
        start, end, params = self.get_params(request)
        return Response(analytics.get_top_products(start, end, params["limit"]))


class RevenueByCategoryView(AnalyticsBaseView):
    def get(self, request):
        start, end, _ = self.get_params(request)
        return Response(analytics.get_revenue_by_category(start, end))


class RevenueByPaymentMethodView(AnalyticsBaseView):
    def get(self, request):
        start, end, _ = self.get_params(request)
        return Response(analytics.get_revenue_by_payment_method(start, end))


class OrderStatusBreakdownView(AnalyticsBaseView):
    def get(self, request):
        start, end, _ = self.get_params(request)
        return Response(analytics.get_order_status_breakdown(start, end))


class CustomerSegmentsView(APIView):
    permission_classes = [IsRoleAdmin]

    def get(self, request):
        return Response(analytics.get_customer_segments())


class VendorPerformanceView(APIView):
    permission_classes = [IsRoleAdmin]

    def get(self, request):
        limit = request.query_params.get("limit")
        if limit is not None and not limit.isdigit():
            return Response({"error": "limit must be a positive integer"}, status=status.HTTP_400_BAD_REQUEST)
        return Response(analytics.get_vendor_performance(int(limit) if limit else None))


# -------- Vendor dashboard --------

class VendorDashboardView(APIView):
    permission_classes = [IsVendor]

    def get(self, request):
        return Response(analytics.get_vendor_dashboard(request.user))


class VendorSalesOverviewView(APIView):
    permission_classes = [IsVendor]

    def get(self, request):
        period = request.query_params.get("period", "7days")
        try:
            data = analytics.get_vendor_sales_overview(request.user, period)
        except ValueError as e:
            return Response({"error": str(e)}, status=status.HTTP_400_BAD_REQUEST)
        return Response({"period": period, "sales_overview": data})


# -------- Shared widgets --------

class LatestOrdersView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        if not is_admin_user(user) and not is_vendor_user(user):
            return Response({"error": "Only admins and vendors can view latest orders."},
                            status=status.HTTP_403_FORBIDDEN)
        try:
            limit = min(int(request.query_params.get("limit", 5)), 50)
        except ValueError:
            return Response({"error": "limit must be an integer"}, status=status.HTTP_400_BAD_REQUEST)

        orders = analytics.get_latest_orders(None if is_admin_user(user) else user, limit)
        return Response(LatestOrderSerializer(orders, many=True).data)


class LowStockAlertsView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        user = request.user
        if not is_admin_user(user) and not is_vendor_user(user):
            return Response({"error": "Only admins and vendors can view stock alerts."},
                            status=status.HTTP_403_FORBIDDEN)
        alerts = get_low_stock_alerts(None if is_admin_user(user) else user)
        return Response({
            "count": len(alerts),
            "alerts": StockAlertSerializer(alerts, many=True).data,
        })
