from django.urls import path

from . import views

Q = '<str:reference>/<int:version>'
OPT = Q + '/options/<str:option_id>'

urlpatterns = [
    path('quotations/', views.QuotationListCreateView.as_view(), name='quotation-list'),
    path(f'quotations/{Q}/', views.QuotationDetailView.as_view(), name='quotation-detail'),
    path(f'quotations/{Q}/options/', views.OptionCreateView.as_view(), name='quotation-option-create'),
    path(f'quotations/{OPT}/', views.OptionDetailView.as_view(), name='quotation-option-detail'),
    path(f'quotations/{OPT}/activate/', views.OptionActivateView.as_view(), name='quotation-option-activate'),
    path(f'quotations/{OPT}/route/', views.RouteView.as_view(), name='quotation-option-route'),
    path(f'quotations/{OPT}/cargo/', views.CargoView.as_view(), name='quotation-option-cargo'),
    path(f'quotations/{OPT}/auto-rate/', views.AutoRateView.as_view(), name='quotation-option-auto-rate'),
    path(f'quotations/{OPT}/lines/', views.LineCreateView.as_view(), name='quotation-line-create'),
    path(f'quotations/{OPT}/lines/<str:line_id>/', views.LineDetailView.as_view(), name='quotation-line-detail'),
    path(f'quotations/{Q}/exchange-rates/', views.ExchangeRatesView.as_view(), name='quotation-exchange-rates'),
    path(f'quotations/{Q}/transitions/', views.TransitionView.as_view(), name='quotation-transition'),
    path(f'quotations/{Q}/compare/', views.CompareView.as_view(), name='quotation-compare'),
    path(f'quotations/{Q}/revisions/', views.RevisionView.as_view(), name='quotation-revision'),
    path(f'quotations/{Q}/activity/', views.ActivityView.as_view(), name='quotation-activity'),
]
