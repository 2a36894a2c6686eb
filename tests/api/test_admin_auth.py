from tests.api.base import *  # noqa: F401,F403
from agency.core.security import decode_jwt


class AdminAuthTests(ApiTestBase):
    settings_overrides = {
        "ADMIN_BOOTSTRAP_ENABLED": True,
        "ADMIN_BOOTSTRAP_EMAIL": "admin@example.com",
        "ADMIN_BOOTSTRAP_PASSWORD": "admin123",
        "ADMIN_BOOTSTRAP_NAME": "Site admin",
    }

    def _login(self, email: str, password: str):
        return self.client.post("/api/admin/auth/login", json={"email": email, "password": password})

    def test_login_bootstraps_admin_when_absent(self):
        response = self._login("Admin@Example.com ", "admin123")
        self.assertEqual(response.status_code, 200)
        claims = decode_jwt(response.json()["access_token"], settings.ADMIN_JWT_SECRET)
        self.assertEqual(claims.get("email"), "admin@example.com")
        self.assertEqual(claims.get("role"), "ADMIN")

        with self.SessionLocal() as db:
            self.assertEqual(db.query(AdminUser).count(), 1)

    def test_bootstrap_disabled_rejects_unknown_admin(self):
        self.set_setting("ADMIN_BOOTSTRAP_ENABLED", False)
        self.assertEqual(self._login("admin@example.com", "admin123").status_code, 401)

    def test_existing_admin_login_and_wrong_password(self):
        self.create_admin(email="owner@example.com", password="secret-pass")
        self.assertEqual(self._login("owner@example.com", "secret-pass").status_code, 200)
        self.assertEqual(self._login("owner@example.com", "wrong").status_code, 401)

    def test_me_returns_profile(self):
        user = self.create_admin()
        response = self.client.get("/api/admin/auth/me", headers=self.admin_headers(subject=str(user.id)))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["email"], "owner@example.com")

        self.assertEqual(self.client.get("/api/admin/auth/me").status_code, 401)
        bad = self.client.get("/api/admin/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        self.assertEqual(bad.status_code, 401)

    def test_password_change(self):
        user = self.create_admin(password="secret-pass")
        headers = self.admin_headers(subject=str(user.id))

        wrong = self.client.post(
            "/api/admin/auth/password",
            json={"currentPassword": "nope", "newPassword": "long-enough-1"},
            headers=headers,
        )
        self.assertEqual(wrong.status_code, 400)

        short = self.client.post(
            "/api/admin/auth/password",
            json={"currentPassword": "secret-pass", "newPassword": "  short "},
            headers=headers,
        )
        self.assertEqual(short.status_code, 400)
        self.assertIn("at least 8", short.json()["detail"])

        ok = self.client.post(
            "/api/admin/auth/password",
            json={"currentPassword": "secret-pass", "newPassword": "long-enough-1"},
            headers=headers,
        )
        self.assertEqual(ok.status_code, 200)
        self.assertEqual(self._login("owner@example.com", "long-enough-1").status_code, 200)
        self.assertEqual(self._login("owner@example.com", "secret-pass").status_code, 401)
