from faker import Faker

from django.test.utils import override_settings
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import RefreshToken

from main import factories


@override_settings(
    CHANNEL_LAYERS={"default": {"BACKEND": "channels.layers.InMemoryChannelLayer"}},
    CACHES={"default": {
        "BACKEND": "django.core.cache.backends.dummy.DummyCache"
    }}
)
class AuthenticatedUserTestBase(APITestCase):
    """
    Creates a user for ``ROLE`` and authenticates the client with a JWT
    access token before every test.
    """
    ROLE: str = "customer"
    fake_factory = Faker()

    def setUp(self):
        user_factory = {
            "customer": factories.CustomerFactory,
            "vendor": factories.VendorFactory,
            "admin": factories.AdminFactory,
        }[self.ROLE]
        self.password = factories.PASSWORD
        self.user = user_factory(email=self.fake_factory.unique.email())
        self.authenticate(self.user)

    @property
    def fs(self):
        return factories

    def authenticate(self, user):
        token = RefreshToken.for_user(user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token.access_token}")

    def logout(self):
        self.client.credentials()
