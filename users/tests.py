from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from main import factories
from main.test import AuthenticatedUserTestBase
from users.enums import UserRole
from users.models import User


class AuthTests(APITestCase):
    def test_customer_signup_returns_tokens(self):
        response = self.client.post(reverse("signup-customer"), {
            "email": "new.customer@example.com",
            "password": factories.PASSWORD,
            "full_name": "Asha Rao",
            "phone_number": "9876543210",
            "agree_to_terms": True,
        }, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertIn("access_token", response.data)
        self.assertEqual(response.data["user"]["role"], UserRole.CUSTOMER.value)
        user = User.objects.get(email="new.customer@example.com")
        self.assertEqual(user.first_name, "Asha")
        self.assertEqual(user.last_name, "Rao")

    def test_signup_requires_terms(self):
        response = self.client.post(reverse("signup-customer"), {
            "email": "terms@example.com",
            "password": factories.PASSWORD,
            "full_name": "No Terms",
            "agree_to_terms": False,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("agree_to_terms", response.data)

    def test_login(self):
        user = factories.CustomerFactory()
        response = self.client.post(reverse("user-login"), {
            "email": user.email, "password": factories.PASSWORD,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("refresh_token", response.data)

    def test_login_invalid_credentials(self):
        user = factories.CustomerFactory()
        response = self.client.post(reverse("user-login"), {
            "email": user.email, "password": "wrong-password",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_login_inactive_user(self):
        user = factories.CustomerFactory(is_active=False)
        response = self.client.post(reverse("user-login"), {
            "email": user.email, "password": factories.PASSWORD,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class ProfileTests(AuthenticatedUserTestBase):
    def test_profile(self):
        response = self.client.get(reverse("user-profile"))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["email"], self.user.email)

    def test_profile_update(self):
        response = self.client.patch(reverse("profile-update"), {"first_name": "Ravi"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertEqual(self.user.first_name, "Ravi")

    def test_change_password(self):
        response = self.client.post(reverse("change-password"), {
            "old_password": self.password,
            "new_password": "An0ther-Secret!",
            "confirm_password": "An0ther-Secret!",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.user.refresh_from_db()
        self.assertTrue(self.user.check_password("An0ther-Secret!"))

    def test_change_password_wrong_old_password(self):
        response = self.client.post(reverse("change-password"), {
            "old_password": "not-it",
            "new_password": "An0ther-Secret!",
            "confirm_password": "An0ther-Secret!",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_customer_cannot_list_users(self):
        response = self.client.get(reverse("user-list"))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)


class UserAdminTests(AuthenticatedUserTestBase):
    ROLE = "admin"

    def test_list_filtered_by_role(self):
        factories.VendorFactory()
        factories.CustomerFactory()
        response = self.client.get(reverse("user-list"), {"role": UserRole.VENDOR.value})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertTrue(response.data["results"])
        self.assertTrue(all(u["role"] == UserRole.VENDOR.value for u in response.data["results"]))

    def test_create_vendor(self):
        response = self.client.post(reverse("user-create-vendor"), {
            "email": "shop@example.com",
            "password": factories.PASSWORD,
            "business_name": "Shop Co",
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        vendor = User.objects.get(email="shop@example.com")
        self.assertEqual(vendor.role, UserRole.VENDOR.value)
        self.assertTrue(vendor.check_password(factories.PASSWORD))

    def test_bulk_activate_skips_self(self):
        others = [factories.CustomerFactory(), factories.CustomerFactory()]
        response = self.client.post(reverse("user-bulk-activate"), {
            "user_ids": [u.id for u in others] + [self.user.id],
            "is_active": False,
        }, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["updated_count"], 2)
        self.user.refresh_from_db()
        self.assertTrue(self.user.is_active)
