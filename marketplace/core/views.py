from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated, AllowAny
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer, TokenRefreshSerializer
from rest_framework_simplejwt.exceptions import AuthenticationFailed, InvalidToken, TokenError
from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.shortcuts import get_object_or_404
from .models import AuditLog
from .permissions import IsMarketplaceAdmin
from .serializers import UserSerializer, UserCreateSerializer, AuditLogSerializer
from .utils import create_audit_log, paginate, success
from .cache_utils import invalidate_analytics_cache

User = get_user_model()


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        if not self.user.is_active:
            raise AuthenticationFailed('User account is disabled.')
        data['user'] = UserSerializer(self.user).data
        return data

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token['username'] = user.username
        token['role'] = user.role
        return token


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        response.data = {'success': True, 'data': response.data}
        return response


class CustomTokenRefreshSerializer(TokenRefreshSerializer):
    """Token refresh that treats deleted users as an invalid token"""
    def validate(self, attrs):
        try:
            return super().validate(attrs)
        except (InvalidToken, TokenError):
            raise InvalidToken('Token is invalid or expired.')
        except ObjectDoesNotExist:
            raise InvalidToken('Token is invalid. User no longer exists.')


class CustomTokenRefreshView(TokenRefreshView):
    serializer_class = CustomTokenRefreshSerializer

    def post(self, request, *args, **kwargs):
        response = super().post(request, *args, **kwargs)
        response.data = {'success': True, 'data': response.data}
        return response


@api_view(['POST'])
@permission_classes([AllowAny])
def register(request):
    """Register a customer or farmer account and issue tokens"""
    serializer = UserCreateSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = serializer.save()
    invalidate_analytics_cache()

    token = CustomTokenObtainPairSerializer.get_token(user)
    return success({
        'user': UserSerializer(user).data,
        'access': str(token.access_token),
        'refresh': str(token),
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'PATCH'])
@permission_classes([IsAuthenticated])
def user_me(request):
    """Get or update the current user's profile"""
    if request.method == 'PATCH':
        serializer = UserSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success(serializer.data)
    return success(UserSerializer(request.user).data)


@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def user_list(request):
    """List users, optionally filtered by role or active flag"""
    queryset = User.objects.all().order_by('-date_joined')
    role = request.query_params.get('role')
    if role:
        queryset = queryset.filter(role=role)
    is_active = request.query_params.get('is_active')
    if is_active is not None:
        queryset = queryset.filter(is_active=is_active.lower() in ('1', 'true', 'yes'))
    return paginate(request, queryset, UserSerializer)


@api_view(['PUT'])
@permission_classes([IsMarketplaceAdmin])
def user_ban(request, pk):
    """Ban or unban a user (toggles is_active unless 'banned' is given)"""
    user = get_object_or_404(User, pk=pk)
    banned = request.data.get('banned')
    if banned is None:
        user.is_active = not user.is_active
    else:
        user.is_active = str(banned).lower() not in ('1', 'true', 'yes')
    user.save(update_fields=['is_active', 'updated_at'])

    create_audit_log(
        request=request,
        action='user_ban',
        model_name='User',
        object_id=str(user.id),
        object_name=user.username,
        changes={'is_active': user.is_active},
    )
    invalidate_analytics_cache()
    return success(UserSerializer(user).data)


@api_view(['GET'])
@permission_classes([IsMarketplaceAdmin])
def audit_log_list(request):
    """List audit logs with optional action/model/reference filters"""
    queryset = AuditLog.objects.select_related('user').all()
    for param, field in (('action', 'action'), ('model_name', 'model_name'), ('reference', 'object_reference')):
        value = request.query_params.get(param)
        if value:
            queryset = queryset.filter(**{field: value})
    return paginate(request, queryset, AuditLogSerializer)
