from django.contrib import admin
from django.urls import path
from pipeline import views

urlpatterns = [
    path("admin/", admin.site.urls),

    # Healthcheck (no auth)
    path("healthz", views.healthz, name="healthz"),
]
