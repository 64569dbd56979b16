import uuid

from django.contrib.auth.models import (
    AbstractBaseUser,
    BaseUserManager,
    PermissionsMixin,
)
from django.db import models
from django.utils import timezone


class UserManager(BaseUserManager):
    """Custom manager for the User model that uses email as the unique identifier."""

    use_in_migrations = True

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("An email address is required.")
        email = self.normalize_email(email)
        extra_fields.setdefault("is_active", True)
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("role", User.Role.ADMIN)
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)


class User(AbstractBaseUser, PermissionsMixin):
    """
    Marketplace user.

    Uses email as the unique identifier instead of a username. The role
    decides which fulfillment operations the user may drive; couriers and
    site managers additionally carry an :class:`Agent` profile.
    """

    class Role(models.TextChoices):
        ADMIN = "ADMIN", "Administrator"
        BUYER = "BUYER", "Buyer"
        SELLER = "SELLER", "Seller"
        COURIER = "COURIER", "Pickup-delivery agent"
        SITE_MANAGER = "SITE_MANAGER", "Pickup-site manager"

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )
    email = models.EmailField(
        "email address",
        unique=True,
        error_messages={
            "unique": "A user with this email address already exists.",
        },
    )
    first_name = models.CharField("first name", max_length=150)
    last_name = models.CharField("last name", max_length=150)
    phone = models.CharField("phone", max_length=30, blank=True, default="")
    role = models.CharField(
        "role",
        max_length=20,
        choices=Role.choices,
        default=Role.BUYER,
        db_index=True,
    )
    is_active = models.BooleanField("active", default=True)
    is_staff = models.BooleanField("staff status", default=False)
    date_joined = models.DateTimeField("date joined", default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["first_name", "last_name"]

    class Meta:
        verbose_name = "User"
        verbose_name_plural = "Users"
        ordering = ["last_name", "first_name"]

    def __str__(self):
        return f"{self.get_full_name()} <{self.email}>"

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def get_short_name(self):
        return self.first_name

    @property
    def is_fulfillment_admin(self) -> bool:
        return self.is_superuser or self.role == self.Role.ADMIN


class Agent(models.Model):
    """A courier or a pickup-site manager.

    Agents are deactivated, never deleted, because historical orders,
    commissions and payment proofs keep referencing them.
    """

    class AgentType(models.TextChoices):
        COURIER = "COURIER", "Pickup-delivery agent"
        SITE_MANAGER = "SITE_MANAGER", "Pickup-site manager"

    user = models.OneToOneField(
        User,
        on_delete=models.PROTECT,
        related_name="agent",
        verbose_name="user",
    )
    agent_type = models.CharField(
        "agent type",
        max_length=20,
        choices=AgentType.choices,
        db_index=True,
    )
    agent_code = models.CharField("agent code", max_length=20, unique=True)
    is_available = models.BooleanField("available", default=True)
    is_active = models.BooleanField("active", default=True)
    assigned_site = models.ForeignKey(
        "pickup_sites.PickupSite",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="agents",
        verbose_name="assigned pickup site",
    )
    deactivated_at = models.DateTimeField("deactivated at", null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Agent"
        verbose_name_plural = "Agents"
        ordering = ["agent_code"]

    def __str__(self):
        return f"{self.agent_code} ({self.get_agent_type_display()})"

    @property
    def is_courier(self) -> bool:
        return self.agent_type == self.AgentType.COURIER

    @property
    def is_site_manager(self) -> bool:
        return self.agent_type == self.AgentType.SITE_MANAGER
