"""Main API URL router for /api/v1/."""
from django.urls import include, path
from rest_framework.routers import DefaultRouter
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from api.v1 import views as v1_views

router = DefaultRouter()
router.register(r'orders', v1_views.OrderViewSet, basename='order')
router.register(r'commissions', v1_views.CommissionViewSet, basename='commission')
router.register(r'payment-proofs', v1_views.PaymentProofViewSet, basename='payment-proof')
router.register(r'sites', v1_views.PickupSiteViewSet, basename='site')
router.register(r'agents', v1_views.AgentViewSet, basename='agent')
router.register(r'alerts', v1_views.AlertViewSet, basename='alert')


app_name = 'api'
urlpatterns = [
    path('auth/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('', include(router.urls)),
]
