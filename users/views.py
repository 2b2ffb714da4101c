import logging

from rest_framework import generics, permissions, status, filters, viewsets
from rest_framework.response import Response
from rest_framework.decorators import action
from rest_framework_simplejwt.tokens import RefreshToken
from django.contrib.auth import authenticate
from django_filters.rest_framework import DjangoFilterBackend
from drf_yasg.utils import swagger_auto_schema

from users.enums import UserRole
from users.models import User
from users.permissions import IsRoleAdmin
from users.serializers import (
    UserSignupSerializer,
    UserProfileUpdateSerializer,
    UserSerializer,
    UserLoginSerializer,
    UserLoginResponseSerializer,
    VendorCreateSerializer,
    ChangePasswordSerializer,
    BulkUserActionSerializer,
    BulkUserActivateSerializer,
)

logger = logging.getLogger(__name__)


def _token_response(user, status_code=status.HTTP_200_OK):
    refresh = RefreshToken.for_user(user)
    response_data = {
        "user": user,
        "access_token": str(refresh.access_token),
        "refresh_token": str(refresh),
    }
    return Response(UserLoginResponseSerializer(response_data).data, status=status_code)


# ----------------------
# Login
# ----------------------
class UnifiedLoginView(generics.GenericAPIView):
    permission_classes = [permissions.AllowAny]
    serializer_class = UserLoginSerializer

    @swagger_auto_schema(
        request_body=UserLoginSerializer,
        responses={200: UserLoginResponseSerializer}
    )
    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        # inactive users fail authenticate() under ModelBackend, check first
        user = User.objects.filter(email__iexact=serializer.validated_data['email']).first()
        if user and not user.is_active:
            return Response({"detail": "User account is disabled."}, status=status.HTTP_403_FORBIDDEN)

        user = authenticate(
            request,
            email=serializer.validated_data['email'],
            password=serializer.validated_data['password']
        )
        if not user:
            return Response({"detail": "Invalid credentials."}, status=status.HTTP_401_UNAUTHORIZED)

        logger.info("User %s logged in", user.id)
        return _token_response(user)


# ----------------------
# Signup (Customer Default)
# ----------------------
class CustomerSignupView(generics.CreateAPIView):
    serializer_class = UserSignupSerializer
    permission_classes = [permissions.AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = serializer.save(role=UserRole.CUSTOMER.value)
        logger.info("Customer %s signed up", user.id)
        return _token_response(user, status.HTTP_201_CREATED)


# ----------------------
# Profile
# ----------------------
class UserProfileView(generics.RetrieveAPIView):
    serializer_class = UserSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user


class UserProfileUpdateView(generics.UpdateAPIView):
    serializer_class = UserProfileUpdateSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self):
        return self.request.user


class ChangePasswordView(generics.GenericAPIView):
    serializer_class = ChangePasswordSerializer
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user = request.user

        if not user.check_password(serializer.validated_data['old_password']):
            return Response(
                {'error': 'Old password is incorrect'},
                status=status.HTTP_400_BAD_REQUEST
            )

        user.set_password(serializer.validated_data['new_password'])
        user.save(update_fields=["password"])
        return Response({'message': 'Password changed successfully'}, status=status.HTTP_200_OK)


# ----------------------
# User management (Admin)
# ----------------------
class UserViewSet(viewsets.ModelViewSet):
    queryset = User.objects.all()
    serializer_class = UserSerializer
    permission_classes = [IsRoleAdmin]
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['role', 'is_active']
    search_fields = ['email', 'first_name', 'last_name', 'business_name']
    ordering_fields = ['email', 'first_name', 'last_name', 'role', 'created_at']
    ordering = ['-created_at']
    http_method_names = ['get', 'post', 'patch', 'delete']

    def get_serializer_class(self):
        if self.action == 'create_vendor':
            return VendorCreateSerializer
        return UserSerializer

    @action(detail=False, methods=['post'], url_path='vendors')
    def create_vendor(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vendor = serializer.save()
        logger.info("Admin %s created vendor %s", request.user.id, vendor.id)
        return Response(UserSerializer(vendor).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='bulk-activate')
    def bulk_activate(self, request):
        serializer = BulkUserActivateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        updated = (
            User.objects.filter(id__in=serializer.validated_data['user_ids'])
            .exclude(id=request.user.id)
            .update(is_active=serializer.validated_data['is_active'])
        )
        return Response({'updated_count': updated}, status=status.HTTP_200_OK)

    @action(detail=False, methods=['post'], url_path='bulk-delete')
    def bulk_delete(self, request):
        serializer = BulkUserActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        deleted, _ = (
            User.objects.filter(id__in=serializer.validated_data['user_ids'])
            .exclude(id=request.user.id)
            .delete()
        )
        return Response({'deleted_count': deleted}, status=status.HTTP_200_OK)
