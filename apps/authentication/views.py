from django.contrib.auth import get_user_model
from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from .permissions import IsAdmin
from .serializers import LoginSerializer, RegisterSerializer, UserSerializer

User = get_user_model()


def issue_tokens(user) -> dict:
  refresh = RefreshToken.for_user(user)
  return {
    "refresh": str(refresh),
    "access": str(refresh.access_token),
    "user": UserSerializer(user).data,
  }


class RegisterView(generics.CreateAPIView):
  """
  Shopper sign-up. The response carries a token pair so the new account can
  enroll in the affiliate programme straight away.
  """

  serializer_class = RegisterSerializer
  permission_classes = [permissions.AllowAny]

  def create(self, request, *args, **kwargs):
    serializer = self.get_serializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    return Response(issue_tokens(user), status=status.HTTP_201_CREATED)


class LoginView(generics.GenericAPIView):
  serializer_class = LoginSerializer
  permission_classes = [permissions.AllowAny]

  def post(self, request):
    serializer = self.get_serializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    return Response(issue_tokens(serializer.validated_data["user"]))


class MeView(generics.RetrieveUpdateAPIView):
  serializer_class = UserSerializer
  permission_classes = [permissions.IsAuthenticated]

  def get_object(self):
    return self.request.user


class UserListView(generics.ListAPIView):
  """
  Admin-only list of active users, used to find the owner of an affiliate
  account. ``?has_affiliate=true|false`` narrows to enrolled or not-yet
  enrolled users.
  """

  serializer_class = UserSerializer
  permission_classes = [permissions.IsAuthenticated, IsAdmin]
  filterset_fields = ["role"]
  search_fields = ["email", "full_name", "affiliate__code"]

  def get_queryset(self):
    qs = User.objects.filter(is_active=True).select_related("affiliate").order_by("-created_at")
    has_affiliate = self.request.query_params.get("has_affiliate")
    if has_affiliate is not None:
      qs = qs.filter(affiliate__isnull=has_affiliate.lower() not in ("true", "1", "yes"))
    return qs
