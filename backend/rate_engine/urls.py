from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include('quotes.urls')),
    path('api/', include('pricing.urls')),
    path('api/', include('accounts.urls')),
]
