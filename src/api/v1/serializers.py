"""Serializers for the fulfillment API v1."""
from django.contrib.auth import get_user_model
from rest_framework import serializers

from accounts.models import Agent
from alerts.models import Alert
from commissions.models import Commission, CommissionType, PaymentProof
from confirmations.models import Confirmation, TrackingPoint
from orders.models import Order, OrderStatus, OrderStatusHistory
from pickup_sites.models import PickupSite

User = get_user_model()


# ---------------------------------------------------------------------------
# Sites and agents
# ---------------------------------------------------------------------------

class PickupSiteSerializer(serializers.ModelSerializer):
    available_slots = serializers.IntegerField(read_only=True)

    class Meta:
        model = PickupSite
        fields = [
            'id', 'name', 'address', 'city', 'latitude', 'longitude',
            'capacity', 'current_load', 'available_slots', 'contact_phone',
            'is_active',
        ]
        read_only_fields = fields


class AgentSerializer(serializers.ModelSerializer):
    email = serializers.EmailField(source='user.email', read_only=True)
    full_name = serializers.CharField(source='user.get_full_name', read_only=True)

    class Meta:
        model = Agent
        fields = [
            'id', 'user', 'email', 'full_name', 'agent_type', 'agent_code',
            'is_available', 'is_active', 'assigned_site', 'deactivated_at',
            'created_at',
        ]
        read_only_fields = fields


class AgentRegisterSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    agent_type = serializers.ChoiceField(choices=Agent.AgentType.choices)
    assigned_site_id = serializers.IntegerField(required=False, allow_null=True)

    def validate_user_id(self, value):
        try:
            return User.objects.get(pk=value)
        except User.DoesNotExist:
            raise serializers.ValidationError("Unknown user.")

    def validate_assigned_site_id(self, value):
        if value is None:
            return None
        try:
            return PickupSite.objects.get(pk=value)
        except PickupSite.DoesNotExist:
            raise serializers.ValidationError("Unknown pickup site.")


class AvailabilitySerializer(serializers.Serializer):
    is_available = serializers.BooleanField()


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------

class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for Order.

    The collection code is only shown to the buyer it was issued for.
    """

    agent_code = serializers.CharField(source='agent.agent_code', read_only=True, default=None)
    pickup_site_name = serializers.CharField(source='pickup_site.name', read_only=True, default=None)
    delivery_code = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'order_number', 'buyer', 'seller', 'agent', 'agent_code',
            'pickup_site', 'pickup_site_name', 'source', 'status', 'total',
            'delivery_code', 'delivery_code_expires_at', 'commission_amount',
            'claimed_at', 'status_changed_at', 'failed_confirmation_count',
            'needs_review', 'review_reason', 'created_at',
        ]
        read_only_fields = fields

    def get_delivery_code(self, obj):
        request = self.context.get('request')
        if request is not None and request.user.pk == obj.buyer_id:
            return obj.delivery_code
        return None


class OrderCreateSerializer(serializers.Serializer):
    buyer_id = serializers.UUIDField()
    seller_id = serializers.UUIDField(required=False)
    total = serializers.DecimalField(max_digits=14, decimal_places=2)
    pickup_site_id = serializers.IntegerField(required=False, allow_null=True)
    source = serializers.ChoiceField(choices=Order.Source.choices, default=Order.Source.MARKETPLACE)

    def _user(self, value):
        try:
            return User.objects.get(pk=value, is_active=True)
        except User.DoesNotExist:
            raise serializers.ValidationError("Unknown user.")

    def validate_buyer_id(self, value):
        return self._user(value)

    def validate_seller_id(self, value):
        return self._user(value)

    def validate_pickup_site_id(self, value):
        if value is None:
            return None
        try:
            return PickupSite.objects.get(pk=value)
        except PickupSite.DoesNotExist:
            raise serializers.ValidationError("Unknown pickup site.")


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    actor_email = serializers.EmailField(source='actor.email', read_only=True, default=None)

    class Meta:
        model = OrderStatusHistory
        fields = ['id', 'from_status', 'to_status', 'actor', 'actor_email', 'is_override', 'reason', 'created_at']
        read_only_fields = fields


class AdvanceSerializer(serializers.Serializer):
    expected_status = serializers.ChoiceField(choices=OrderStatus.choices)
    target_status = serializers.ChoiceField(choices=OrderStatus.choices)


class OverrideSerializer(serializers.Serializer):
    target_status = serializers.ChoiceField(choices=OrderStatus.choices)
    justification = serializers.CharField(max_length=1000)


class ConfirmationSubmitSerializer(serializers.Serializer):
    """Evidence for one leg. Which fields matter depends on ``kind``."""

    kind = serializers.ChoiceField(choices=Confirmation.Kind.choices)
    code = serializers.CharField(required=False, allow_blank=True, max_length=12)
    payload = serializers.CharField(required=False, allow_blank=True)
    latitude = serializers.FloatField(required=False)
    longitude = serializers.FloatField(required=False)
    accuracy = serializers.FloatField(required=False)
    photo = serializers.FileField(required=False)
    condition_note = serializers.CharField(required=False, allow_blank=True)


class ConfirmationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Confirmation
        fields = [
            'id', 'order', 'kind', 'evidence', 'condition_note', 'distance_meters',
            'verifier', 'is_verified', 'rejection_reason', 'from_status',
            'to_status', 'created_at',
        ]
        read_only_fields = fields


class PositionReportSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    accuracy = serializers.FloatField(required=False)
    altitude = serializers.FloatField(required=False)
    speed = serializers.FloatField(required=False)
    heading = serializers.FloatField(required=False)


class TrackingPointSerializer(serializers.ModelSerializer):
    class Meta:
        model = TrackingPoint
        fields = [
            'id', 'order', 'reported_by', 'latitude', 'longitude', 'accuracy',
            'altitude', 'speed', 'heading', 'distance_to_site_meters',
            'status_at_time', 'created_at',
        ]
        read_only_fields = fields


class CollectionCodeSerializer(serializers.Serializer):
    order = OrderSerializer(read_only=True)
    code = serializers.CharField(read_only=True)
    expires_at = serializers.DateTimeField(read_only=True)
    qr_payload = serializers.CharField(read_only=True)
    qr_image = serializers.CharField(read_only=True)


# ---------------------------------------------------------------------------
# Commissions and payment proofs
# ---------------------------------------------------------------------------

class CommissionSerializer(serializers.ModelSerializer):
    agent_code = serializers.CharField(source='agent.agent_code', read_only=True)
    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = Commission
        fields = [
            'id', 'agent', 'agent_code', 'order', 'order_number', 'commission_type',
            'mode', 'rate', 'base_amount', 'amount', 'status', 'reviewed_by',
            'reviewed_at', 'review_notes', 'paid_at', 'payment_reference',
            'created_at',
        ]
        read_only_fields = fields


class CommissionQuerySerializer(serializers.Serializer):
    commission_type = serializers.ChoiceField(choices=CommissionType.choices, default=CommissionType.DELIVERY)


class ReviewSerializer(serializers.Serializer):
    decision = serializers.ChoiceField(choices=['approved', 'rejected'])
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class MarkPaidSerializer(serializers.Serializer):
    reference = serializers.CharField(required=False, allow_blank=True, default='', max_length=100)


class PaymentProofSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source='order.order_number', read_only=True)

    class Meta:
        model = PaymentProof
        fields = [
            'id', 'order', 'order_number', 'agent', 'amount', 'method', 'reference', 'attachment',
            'status', 'reviewed_by', 'reviewed_at', 'review_notes', 'created_at',
        ]
        read_only_fields = fields


class PaymentProofCreateSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    amount = serializers.DecimalField(max_digits=14, decimal_places=2)
    method = serializers.ChoiceField(choices=PaymentProof.Method.choices)
    reference = serializers.CharField(required=False, allow_blank=True, default='', max_length=100)
    attachment = serializers.FileField(required=False)


# ---------------------------------------------------------------------------
# Alerts
# ---------------------------------------------------------------------------

class AlertSerializer(serializers.ModelSerializer):
    """Read-only serializer for Alert model.

    Alerts are created by Celery tasks / service functions, not via the
    API.  The viewset only exposes list, retrieve and mark-read actions.
    """

    class Meta:
        model = Alert
        fields = [
            'id', 'order', 'pickup_site', 'alert_type', 'severity', 'title',
            'message', 'payload', 'is_read', 'read_at', 'created_at',
        ]
        read_only_fields = fields
