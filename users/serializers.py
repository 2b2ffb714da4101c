from rest_framework import serializers
from django.core.exceptions import ValidationError as DjangoValidationError
from django.contrib.auth.password_validation import validate_password

from users.models import User
from users.enums import UserRole


# --------------------------
# USER SERIALIZERS
# --------------------------

class UserSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="get_full_name", read_only=True)

    class Meta:
        model = User
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'profile_image',
            'phone_number', 'address', 'gender', 'date_of_birth',
            'business_name', 'role', 'is_active', 'created_at',
        ]
        read_only_fields = ['id', 'email', 'role', 'created_at']


class UserSignupSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(write_only=True)
    agree_to_terms = serializers.BooleanField(write_only=True)
    role = serializers.CharField(read_only=True, default=UserRole.CUSTOMER.value)

    class Meta:
        model = User
        fields = ['email', 'password', 'full_name', 'phone_number', 'agree_to_terms', 'role']
        extra_kwargs = {
            'password': {'write_only': True},
        }

    def validate_agree_to_terms(self, value):
        if not value:
            raise serializers.ValidationError("You must agree to the terms.")
        return value

    def validate_password(self, value):
        try:
            validate_password(value)
        except DjangoValidationError as e:
            raise serializers.ValidationError(list(e.messages))
        return value

    def create(self, validated_data):
        full_name = validated_data.pop('full_name')
        first_name, *last_name = full_name.split(' ', 1)
        last_name = last_name[0] if last_name else ''

        return User.objects.create_user(
            email=validated_data['email'],
            password=validated_data['password'],
            first_name=first_name,
            last_name=last_name,
            phone_number=validated_data.get('phone_number', ''),
            agree_to_terms=validated_data['agree_to_terms'],
            role=validated_data.get('role', UserRole.CUSTOMER.value),
        )


class VendorCreateSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True)

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'first_name', 'last_name', 'phone_number', 'business_name']
        read_only_fields = ['id']

    def create(self, validated_data):
        password = validated_data.pop('password')
        return User.objects.create_vendor(password=password, agree_to_terms=True, **validated_data)


class UserLoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class UserLoginResponseSerializer(serializers.Serializer):
    user = UserSerializer(read_only=True)
    access_token = serializers.CharField()
    refresh_token = serializers.CharField()


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = [
            'first_name', 'last_name', 'profile_image', 'phone_number',
            'address', 'gender', 'date_of_birth', 'business_name',
        ]


# --------------------------
# USER PUBLIC SERIALIZER
# --------------------------

class UserPublicSerializer(serializers.ModelSerializer):
    full_name = serializers.CharField(source="get_full_name", read_only=True)

    class Meta:
        model = User
        fields = ['id', 'full_name', 'business_name', 'profile_image', 'role']
        read_only_fields = ['role']


class ChangePasswordSerializer(serializers.Serializer):
    old_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)
    confirm_password = serializers.CharField(write_only=True)

    def validate(self, attrs):
        if attrs['new_password'] != attrs['confirm_password']:
            raise serializers.ValidationError({"confirm_password": "Passwords do not match."})
        try:
            validate_password(attrs['new_password'], self.context['request'].user)
        except DjangoValidationError as e:
            raise serializers.ValidationError({"new_password": list(e.messages)})
        return attrs


class BulkUserActionSerializer(serializers.Serializer):
    user_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class BulkUserActivateSerializer(BulkUserActionSerializer):
    is_active = serializers.BooleanField()
