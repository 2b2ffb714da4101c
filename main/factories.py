from datetime import timedelta
from decimal import Decimal

import factory
from factory import fuzzy
from faker import Faker
from django.contrib.auth import get_user_model
from django.utils import timezone

from common.enums import CategoryLevel
from common.models import Category, Wishlist
from coupons.enums import DiscountType
from coupons.models import Coupon
from orders.enums import OrderStatus, PaymentMethod
from orders.models import Order, OrderItem
from products.enums import ApprovalStatus
from products.models import Product, ProductVariant
from review.models import Review
from users.enums import UserRole

fake = Faker()
User = get_user_model()

PASSWORD = "Str0ng-Passw0rd!"


class UserFactory(factory.django.DjangoModelFactory):
    """Create test user."""
    class Meta:
        model = User
        django_get_or_create = ("email",)

    email = factory.Sequence(lambda n: f"user{n}@example.com")
    password = factory.django.Password(PASSWORD)
    first_name = factory.LazyFunction(fake.first_name)
    last_name = factory.LazyFunction(fake.last_name)
    role = UserRole.CUSTOMER.value
    agree_to_terms = True
    is_active = True


class CustomerFactory(UserFactory):
    email = factory.Sequence(lambda n: f"customer{n}@example.com")
    role = UserRole.CUSTOMER.value


class VendorFactory(UserFactory):
    email = factory.Sequence(lambda n: f"vendor{n}@example.com")
    role = UserRole.VENDOR.value
    business_name = factory.LazyFunction(fake.company)


class AdminFactory(UserFactory):
    email = factory.Sequence(lambda n: f"admin{n}@example.com")
    role = UserRole.ADMIN.value
    is_staff = True


class CategoryFactory(factory.django.DjangoModelFactory):
    """Level 1 category; pass ``parent_category`` and ``level`` for deeper nodes."""
    class Meta:
        model = Category

    name = factory.Sequence(lambda n: f"Category {n}")
    level = CategoryLevel.CATEGORY
    parent_category = None
    is_active = True


class SubCategoryFactory(CategoryFactory):
    name = factory.Sequence(lambda n: f"Subcategory {n}")
    level = CategoryLevel.SUBCATEGORY
    parent_category = factory.SubFactory(CategoryFactory)


class SubSubCategoryFactory(CategoryFactory):
    name = factory.Sequence(lambda n: f"Sub-subcategory {n}")
    level = CategoryLevel.SUB_SUBCATEGORY
    parent_category = factory.SubFactory(SubCategoryFactory)


class ProductFactory(factory.django.DjangoModelFactory):
    """ Approved, active product owned by a vendor """
    class Meta:
        model = Product

    vendor = factory.SubFactory(VendorFactory)
    name = factory.Sequence(lambda n: f"Cotton Shirt {n}")
    description = factory.LazyFunction(fake.sentence)
    brand = "Acme"
    category = factory.SubFactory(CategoryFactory)
    tags = factory.LazyFunction(lambda: ["cotton", "casual"])
    price = Decimal("500.00")
    original_price = Decimal("800.00")
    is_active = True
    approval_status = ApprovalStatus.APPROVED


class ProductVariantFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = ProductVariant

    product = factory.SubFactory(ProductFactory)
    color = "Blue"
    color_code = "#0000FF"
    size = "M"
    price = Decimal("500.00")
    original_price = Decimal("800.00")
    stock = 20


class WishlistFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Wishlist

    user = factory.SubFactory(CustomerFactory)
    product = factory.SubFactory(ProductFactory)


class CouponFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Coupon

    code = factory.Sequence(lambda n: f"SAVE{n:03d}")
    description = "Test coupon"
    discount_type = DiscountType.PERCENTAGE
    discount_value = Decimal("10.00")
    min_order_amount = Decimal("0.00")
    max_discount_amount = None
    usage_limit = 100
    is_active = True
    valid_from = factory.LazyFunction(lambda: timezone.now() - timedelta(days=1))
    valid_until = factory.LazyFunction(lambda: timezone.now() + timedelta(days=30))


def address_payload(**overrides):
    data = {
        "name": fake.name(),
        "phone": "9876543210",
        "address_line1": "12 MG Road",
        "address_line2": "",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
    }
    data.update(overrides)
    return data


class OrderFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Order

    customer = factory.SubFactory(CustomerFactory)
    shipping_address = factory.LazyFunction(address_payload)
    payment_method = PaymentMethod.COD
    order_status = OrderStatus.PENDING
    total_amount = Decimal("1000.00")
    final_amount = Decimal("1020.00")
    platform_fee = Decimal("20.00")


class OrderItemFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = OrderItem

    order = factory.SubFactory(OrderFactory)
    variant = factory.SubFactory(ProductVariantFactory)
    product = factory.LazyAttribute(lambda o: o.variant.product)
    seller = factory.LazyAttribute(lambda o: o.variant.product.vendor)
    size = factory.LazyAttribute(lambda o: o.variant.size)
    quantity = 2
    price = factory.LazyAttribute(lambda o: o.variant.price)
    original_price = factory.LazyAttribute(lambda o: o.variant.original_price)


class ReviewFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = Review

    product = factory.SubFactory(ProductFactory)
    user = factory.SubFactory(CustomerFactory)
    rating = fuzzy.FuzzyInteger(1, 5)
    comment = factory.LazyFunction(fake.sentence)
