"""ViewSets for the fulfillment API v1.

Views only translate HTTP to service calls; every rule lives in the
services, whose errors are rendered by ``api.exceptions``.
"""
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts import services as agent_services
from accounts.models import Agent
from alerts.services import alerts_visible_to
from api.v1.pagination import StandardResultsSetPagination
from api.v1.permissions import IsAgent, IsCourier, IsFulfillmentAdmin
from api.v1.serializers import (
    AdvanceSerializer,
    AgentRegisterSerializer,
    AgentSerializer,
    AlertSerializer,
    AvailabilitySerializer,
    CollectionCodeSerializer,
    CommissionQuerySerializer,
    CommissionSerializer,
    ConfirmationSerializer,
    ConfirmationSubmitSerializer,
    MarkPaidSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    OrderStatusHistorySerializer,
    OverrideSerializer,
    PaymentProofCreateSerializer,
    PaymentProofSerializer,
    PickupSiteSerializer,
    PositionReportSerializer,
    ReviewSerializer,
    TrackingPointSerializer,
)
from commissions import services as commission_services
from commissions.models import Commission, PaymentProof
from confirmations import services as confirmation_services
from core.exceptions import AuthorizationError
from orders import claims
from orders import services as order_services
from orders.models import Order
from pickup_sites.models import PickupSite
from pickup_sites.services import get_site


def _agent_of(user):
    return agent_services.get_agent_for_user(user)


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Orders and their fulfillment workflow.

    Listing is scoped to what the caller takes part in: admins see every
    order, couriers the orders they hold, site managers the orders of their
    site, buyers and sellers their own. Workflow actions address orders by
    id and let the services decide who may act.
    """

    serializer_class = OrderSerializer
    queryset = Order.objects.select_related('agent', 'pickup_site')
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['status', 'pickup_site', 'source', 'needs_review']
    ordering_fields = ['created_at', 'status_changed_at', 'total']

    def get_queryset(self):
        qs = super().get_queryset()
        user = self.request.user
        if user.is_fulfillment_admin:
            return qs
        visible = Q(buyer=user) | Q(seller=user)
        agent = _agent_of(user)
        if agent is not None:
            if agent.is_courier:
                visible |= Q(agent=agent)
            elif agent.is_site_manager:
                visible |= Q(pickup_site_id=agent.assigned_site_id)
        return qs.filter(visible)

    def _respond(self, order, status_code=status.HTTP_200_OK):
        return Response(OrderSerializer(order, context={'request': self.request}).data, status=status_code)

    def create(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        seller = data.get('seller_id') or request.user
        if data['source'] == Order.Source.MARKETPLACE and not request.user.is_fulfillment_admin:
            if seller.pk != request.user.pk:
                raise AuthorizationError("Sellers can only create orders for their own items.")

        order = order_services.create_order(
            buyer=data['buyer_id'],
            seller=seller,
            total=data['total'],
            pickup_site=data.get('pickup_site_id'),
            source=data['source'],
            created_by=request.user,
        )
        return self._respond(order, status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='claimable', permission_classes=[IsCourier])
    def claimable(self, request):
        """Orders open for claiming, optionally filtered by ``?site=<id>``."""
        site_id = request.query_params.get('site')
        site = get_site(site_id) if site_id else None
        qs = claims.list_claimable(_agent_of(request.user), site=site)
        page = self.paginate_queryset(qs)
        serializer = OrderSerializer(page, many=True, context={'request': request})
        return self.get_paginated_response(serializer.data)

    @action(detail=True, methods=['post'], url_path='claim', permission_classes=[IsCourier])
    def claim(self, request, pk=None):
        order = claims.claim(pk, _agent_of(request.user))
        return self._respond(order)

    @action(detail=True, methods=['post'], url_path='publish')
    def publish(self, request, pk=None):
        order = order_services.publish_for_pickup(pk, request.user)
        return self._respond(order)

    @action(detail=True, methods=['post'], url_path='advance', permission_classes=[IsCourier])
    def advance(self, request, pk=None):
        serializer = AdvanceSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = order_services.advance_order(
            pk,
            serializer.validated_data['expected_status'],
            serializer.validated_data['target_status'],
            request.user,
        )
        return self._respond(order)

    @action(detail=True, methods=['post'], url_path='confirm')
    def confirm(self, request, pk=None):
        """Submit handover evidence (PHOTO, GPS, OTP or QR) for the current leg."""
        serializer = ConfirmationSubmitSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        evidence = dict(serializer.validated_data)
        kind = evidence.pop('kind')
        order = confirmation_services.submit_confirmation(pk, kind, evidence, request.user)
        return self._respond(order)

    @action(detail=True, methods=['post'], url_path='issue-code')
    def issue_code(self, request, pk=None):
        issued = confirmation_services.issue_collection_code(pk, request.user)
        serializer = CollectionCodeSerializer(
            {
                'order': issued.order,
                'code': issued.code,
                'expires_at': issued.expires_at,
                'qr_payload': issued.qr_payload,
                'qr_image': issued.qr_image,
            },
            context={'request': request},
        )
        return Response(serializer.data)

    @action(detail=True, methods=['post'], url_path='override', permission_classes=[IsFulfillmentAdmin])
    def override(self, request, pk=None):
        serializer = OverrideSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = order_services.admin_override_transition(
            pk,
            serializer.validated_data['target_status'],
            serializer.validated_data['justification'],
            request.user,
        )
        return self._respond(order)

    @action(detail=True, methods=['get'], url_path='history')
    def history(self, request, pk=None):
        order = self.get_object()
        entries = order_services.get_order_history(order.pk)
        return Response(OrderStatusHistorySerializer(entries, many=True).data)

    @action(detail=True, methods=['get'], url_path='confirmations', permission_classes=[IsFulfillmentAdmin])
    def confirmations(self, request, pk=None):
        """Every evidence attempt for the order. ``?verified=false`` lists rejections only."""
        order = self.get_object()
        verified = request.query_params.get('verified')
        if verified is not None:
            verified = verified.lower() in ('1', 'true', 'yes')
        attempts = confirmation_services.list_confirmations(order.pk, verified=verified)
        return Response(ConfirmationSerializer(attempts, many=True).data)

    @action(detail=True, methods=['post'], url_path='gps-update', permission_classes=[IsCourier])
    def gps_update(self, request, pk=None):
        serializer = PositionReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        point = confirmation_services.record_position(pk, request.user, serializer.validated_data)
        return Response(TrackingPointSerializer(point).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['get'], url_path='tracking')
    def tracking(self, request, pk=None):
        order = self.get_object()
        points = confirmation_services.tracking_trail(order.pk)
        return Response(TrackingPointSerializer(points, many=True).data)

    @action(detail=True, methods=['get', 'post'], url_path='commission')
    def commission(self, request, pk=None):
        """Return the commission of the order, computing it if it is owed."""
        order = self.get_object()
        serializer = CommissionQuerySerializer(data=request.data if request.method == 'POST' else request.query_params)
        serializer.is_valid(raise_exception=True)
        commission = commission_services.compute_or_query_commission(
            order.pk, serializer.validated_data['commission_type'],
        )
        return Response(CommissionSerializer(commission).data)


# ---------------------------------------------------------------------------
# Commissions and payment proofs
# ---------------------------------------------------------------------------

class CommissionViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """Commissions: agents see their own, admins see and review all."""

    serializer_class = CommissionSerializer
    queryset = Commission.objects.select_related('agent', 'order')
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['status', 'commission_type', 'agent']
    ordering_fields = ['created_at', 'amount']

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.user.is_fulfillment_admin:
            return qs
        return qs.filter(agent__user=self.request.user)

    @action(detail=True, methods=['post'], url_path='review', permission_classes=[IsFulfillmentAdmin])
    def review(self, request, pk=None):
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        commission = commission_services.review_commission(
            pk,
            serializer.validated_data['decision'],
            request.user,
            notes=serializer.validated_data['notes'],
        )
        return Response(CommissionSerializer(commission).data)

    @action(detail=True, methods=['post'], url_path='mark-paid', permission_classes=[IsFulfillmentAdmin])
    def mark_paid(self, request, pk=None):
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        commission = commission_services.mark_commission_paid(
            pk, request.user, reference=serializer.validated_data['reference'],
        )
        return Response(CommissionSerializer(commission).data)

    @action(detail=False, methods=['get'], url_path='summary', permission_classes=[IsAgent])
    def summary(self, request):
        """Earnings of the calling agent, per commission status."""
        return Response(commission_services.agent_earnings_summary(_agent_of(request.user)))


class PaymentProofViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = PaymentProofSerializer
    queryset = PaymentProof.objects.select_related('order', 'agent')
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['status', 'method', 'order']
    ordering_fields = ['created_at', 'amount']

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.user.is_fulfillment_admin:
            return qs
        return qs.filter(agent__user=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = PaymentProofCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        proof = commission_services.submit_payment_proof(
            data['order_id'],
            data['amount'],
            data['method'],
            request.user,
            attachment=data.get('attachment'),
            reference=data['reference'],
        )
        return Response(PaymentProofSerializer(proof).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='review', permission_classes=[IsFulfillmentAdmin])
    def review(self, request, pk=None):
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        proof = commission_services.review_payment_proof(
            pk,
            serializer.validated_data['decision'],
            request.user,
            notes=serializer.validated_data['notes'],
        )
        return Response(PaymentProofSerializer(proof).data)


# ---------------------------------------------------------------------------
# Sites and agents
# ---------------------------------------------------------------------------

class PickupSiteViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = PickupSiteSerializer
    queryset = PickupSite.objects.filter(is_active=True).order_by('name')
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['city']
    ordering_fields = ['name', 'current_load']


class AgentViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    serializer_class = AgentSerializer
    queryset = Agent.objects.select_related('user', 'assigned_site')
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['agent_type', 'is_active', 'is_available', 'assigned_site']
    ordering_fields = ['created_at', 'agent_code']

    def get_permissions(self):
        if self.action in ('list', 'create', 'deactivate'):
            return [IsFulfillmentAdmin()]
        return [IsAuthenticated()]

    def get_queryset(self):
        qs = super().get_queryset()
        if self.request.user.is_fulfillment_admin:
            return qs
        return qs.filter(user=self.request.user)

    def create(self, request, *args, **kwargs):
        serializer = AgentRegisterSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        agent = agent_services.register_agent(
            serializer.validated_data['user_id'],
            serializer.validated_data['agent_type'],
            assigned_site=serializer.validated_data.get('assigned_site_id'),
            actor=request.user,
        )
        return Response(AgentSerializer(agent).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='deactivate')
    def deactivate(self, request, pk=None):
        agent = agent_services.deactivate_agent(self.get_object(), request.user)
        return Response(AgentSerializer(agent).data)

    @action(detail=True, methods=['post'], url_path='availability')
    def availability(self, request, pk=None):
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        agent = agent_services.set_availability(
            self.get_object(), serializer.validated_data['is_available'], request.user,
        )
        return Response(AgentSerializer(agent).data)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class AlertViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Read-only ViewSet for fulfillment alerts with a mark-read action.

    Alerts are created by the system (Celery tasks, services), never
    directly via the API.
    """

    serializer_class = AlertSerializer
    pagination_class = StandardResultsSetPagination
    filterset_fields = ['alert_type', 'severity', 'is_read', 'order', 'pickup_site']
    ordering_fields = ['created_at', 'severity']

    def get_queryset(self):
        return alerts_visible_to(self.request.user).order_by('-created_at')

    @action(detail=True, methods=['post'], url_path='mark-read')
    def mark_read(self, request, pk=None):
        """Mark a single alert as read."""
        alert = self.get_object()
        alert.mark_as_read(request.user)
        return Response(AlertSerializer(alert).data)
