# shop-backend/inventory/serializers.py
from rest_framework import serializers

from .exceptions import InsufficientStockError
from .models import MANUAL_MOVEMENT_TYPES, MovementType, StockMovement
from .models_reservations import StockReservation
from .services import StockService
from .stockables import StockableType, resolve_stockable


class StockMovementSerializer(serializers.ModelSerializer):
    created_by = serializers.SerializerMethodField()

    class Meta:
        model = StockMovement
        fields = [
            "id", "stockable_type", "stockable_id", "movement_type",
            "quantity", "quantity_before", "quantity_after",
            "ref_type", "ref_id", "notes", "created_by", "created_at",
        ]
        read_only_fields = fields

    def get_created_by(self, obj):
        return obj.created_by.get_username() if obj.created_by_id else None


class StockReservationSerializer(serializers.ModelSerializer):
    status = serializers.SerializerMethodField()

    class Meta:
        model = StockReservation
        fields = [
            "id", "stockable_type", "stockable_id", "quantity", "cart_id",
            "expires_at", "converted_at", "created_at", "status",
        ]
        read_only_fields = fields

    def get_status(self, obj):
        if obj.is_converted():
            return "converted"
        return "expired" if obj.is_expired() else "active"


class AdjustStockSerializer(serializers.Serializer):
    """
    Input for a manual stock adjustment from the back office.
    """
    stockable_type = serializers.ChoiceField(choices=StockableType.choices)
    stockable_id = serializers.IntegerField(min_value=1)
    movement_type = serializers.ChoiceField(choices=[(t.value, t.label) for t in MANUAL_MOVEMENT_TYPES])
    quantity = serializers.IntegerField()
    notes = serializers.CharField(min_length=3, max_length=500)

    def validate_quantity(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity cannot be zero.")
        return value

    def validate(self, attrs):
        stockable = resolve_stockable(attrs["stockable_type"], attrs["stockable_id"])
        if stockable is None:
            raise serializers.ValidationError({"stockable_id": "The selected stockable does not exist."})
        attrs["stockable"] = stockable
        return attrs

    def adjusted_quantity(self) -> int:
        """
        Manual exits always subtract and manual entries always add.
        """
        quantity = int(self.validated_data["quantity"])
        movement_type = self.validated_data["movement_type"]
        if movement_type == MovementType.MANUAL_EXIT:
            return -abs(quantity)
        if movement_type == MovementType.MANUAL_ENTRY:
            return abs(quantity)
        return quantity

    def save(self, actor=None, stock_service=None):
        stock_service = stock_service or StockService()
        try:
            self.instance = stock_service.adjust(
                self.validated_data["stockable"],
                self.adjusted_quantity(),
                self.validated_data["movement_type"],
                notes=self.validated_data["notes"],
                actor=actor,
            )
        except InsufficientStockError as exc:
            raise serializers.ValidationError({"quantity": [str(exc)]})
        return self.instance
