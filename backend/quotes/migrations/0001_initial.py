import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

MODES = [('AIR', 'Air'), ('SEA_FCL', 'Sea Fcl'), ('SEA_LCL', 'Sea Lcl'), ('ROAD', 'Road')]
INCOTERMS = [
    ('EXW', 'Exw'), ('FCA', 'Fca'), ('CPT', 'Cpt'), ('CIP', 'Cip'), ('DAP', 'Dap'), ('DPU', 'Dpu'),
    ('DDP', 'Ddp'), ('FAS', 'Fas'), ('FOB', 'Fob'), ('CFR', 'Cfr'), ('CIF', 'Cif'),
]
STATUSES = [
    ('DRAFT', 'Draft'), ('VALIDATION', 'Validation'), ('SENT', 'Sent'),
    ('ACCEPTED', 'Accepted'), ('REJECTED', 'Rejected'), ('CANCELLED', 'Cancelled'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='Quotation',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('reference', models.CharField(max_length=64)),
                ('version', models.PositiveIntegerField(default=1)),
                ('parent_version', models.PositiveIntegerField(blank=True, null=True)),
                ('client', models.JSONField(blank=True, default=dict)),
                ('currency', models.CharField(max_length=3)),
                ('exchange_rates', models.JSONField(default=dict)),
                ('validity_date', models.DateField(blank=True, null=True)),
                ('payment_terms', models.CharField(blank=True, default='', max_length=128)),
                ('active_option_key', models.CharField(max_length=32)),
                ('status', models.CharField(choices=STATUSES, default='DRAFT', max_length=12)),
                ('requires_approval', models.BooleanField(default=False)),
                ('requested_by', models.CharField(blank=True, max_length=150, null=True)),
                ('approved_by', models.CharField(blank=True, max_length=150, null=True)),
                ('rejection_reason', models.TextField(blank=True, null=True)),
                ('cancellation_reason', models.TextField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('created_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
            ],
            options={
                'ordering': ['reference', '-version'],
                'indexes': [
                    models.Index(fields=['reference', '-version'], name='quotes_quot_referen_3c9e52_idx'),
                    models.Index(fields=['status', '-updated_at'], name='quotes_quot_status_8f14ab_idx'),
                ],
                'unique_together': {('reference', 'version')},
            },
        ),
        migrations.CreateModel(
            name='PricingOption',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=32)),
                ('position', models.PositiveIntegerField(default=0)),
                ('name', models.CharField(max_length=64)),
                ('mode', models.CharField(choices=MODES, max_length=10)),
                ('pol', models.CharField(blank=True, default='', max_length=16)),
                ('pod', models.CharField(blank=True, default='', max_length=16)),
                ('incoterm', models.CharField(choices=INCOTERMS, max_length=3)),
                ('equipment', models.JSONField(blank=True, default=list)),
                ('cargo', models.JSONField(blank=True, default=dict)),
                ('carrier', models.CharField(blank=True, default='', max_length=128)),
                ('transit_days', models.PositiveIntegerField(blank=True, null=True)),
                ('tariff_reference', models.CharField(blank=True, max_length=64, null=True)),
                ('totals', models.JSONField(blank=True, default=dict)),
                ('quotation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='options', to='quotes.quotation')),
            ],
            options={
                'ordering': ['position', 'id'],
                'unique_together': {('quotation', 'key')},
            },
        ),
        migrations.CreateModel(
            name='QuoteLine',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('key', models.CharField(max_length=32)),
                ('position', models.PositiveIntegerField(default=0)),
                ('section', models.CharField(choices=[('ORIGIN', 'Origin'), ('FREIGHT', 'Freight'), ('DESTINATION', 'Destination')], max_length=12)),
                ('description', models.CharField(blank=True, default='', max_length=255)),
                ('buy_price', models.DecimalField(decimal_places=10, default=0, max_digits=28)),
                ('buy_currency', models.CharField(default='USD', max_length=3)),
                ('markup_type', models.CharField(choices=[('PERCENT', 'Percent'), ('FIXED_AMOUNT', 'Fixed Amount')], default='PERCENT', max_length=12)),
                ('markup_value', models.DecimalField(decimal_places=10, default=0, max_digits=28)),
                ('vat_rule', models.CharField(choices=[('STD_20', 'Std 20'), ('ROAD_14', 'Road 14'), ('EXPORT_0_ART92', 'Export 0 Art92'), ('EXEMPT', 'Exempt')], default='STD_20', max_length=16)),
                ('vendor_name', models.CharField(blank=True, default='', max_length=128)),
                ('source', models.CharField(choices=[('MANUAL', 'Manual'), ('TARIFF', 'Tariff'), ('SMART_DEFAULT', 'Smart Default')], default='MANUAL', max_length=16)),
                ('tariff_charge_ref', models.CharField(blank=True, max_length=96, null=True)),
                ('validity_date', models.DateField(blank=True, null=True)),
                ('settlement', models.CharField(choices=[('CONFIRMED', 'Confirmed'), ('ESTIMATED', 'Estimated')], default='CONFIRMED', max_length=12)),
                ('option', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='lines', to='quotes.pricingoption')),
            ],
            options={
                'ordering': ['position', 'id'],
                'unique_together': {('option', 'key')},
            },
        ),
        migrations.CreateModel(
            name='ActivityLog',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('event', models.CharField(max_length=32)),
                ('payload', models.JSONField(blank=True, default=dict)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('actor', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, to=settings.AUTH_USER_MODEL)),
                ('quotation', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='activity', to='quotes.quotation')),
            ],
            options={
                'ordering': ['created_at', 'id'],
                'indexes': [models.Index(fields=['quotation', 'created_at'], name='quotes_acti_quotati_2b7d90_idx')],
            },
        ),
    ]
