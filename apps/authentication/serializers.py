from django.contrib.auth import get_user_model
from rest_framework import exceptions, serializers

User = get_user_model()


class UserSerializer(serializers.ModelSerializer):
    affiliate_code = serializers.CharField(source="affiliate.code", read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "role",
            "full_name",
            "phone_number",
            "affiliate_code",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "role", "is_active", "created_at", "updated_at"]


class RegisterSerializer(serializers.ModelSerializer):
    password = serializers.CharField(write_only=True, min_length=8)

    class Meta:
        model = User
        fields = [
            "id",
            "email",
            "password",
            "full_name",
            "phone_number",
        ]

    def create(self, validated_data):
        password = validated_data.pop("password")
        user = User.objects.create_user(password=password, role="customer", **validated_data)
        return user


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True, trim_whitespace=False)

    def validate_email(self, value: str) -> str:
        return value.strip().lower()

    def validate(self, attrs):
        user = User.objects.filter(email=attrs["email"]).first()
        if user is None or not user.check_password(attrs["password"]):
            raise exceptions.AuthenticationFailed("Invalid credentials.")
        if not user.is_active:
            raise exceptions.PermissionDenied("User account is inactive.")
        attrs["user"] = user
        return attrs
