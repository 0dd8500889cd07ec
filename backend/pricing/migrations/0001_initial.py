import django.db.models.deletion
from django.db import migrations, models

MODES = [('AIR', 'Air'), ('SEA_FCL', 'Sea Fcl'), ('SEA_LCL', 'Sea Lcl'), ('ROAD', 'Road')]
INCOTERMS = [
    ('EXW', 'Exw'), ('FCA', 'Fca'), ('CPT', 'Cpt'), ('CIP', 'Cip'), ('DAP', 'Dap'), ('DPU', 'Dpu'),
    ('DDP', 'Ddp'), ('FAS', 'Fas'), ('FOB', 'Fob'), ('CFR', 'Cfr'), ('CIF', 'Cif'),
]
SECTIONS = [('ORIGIN', 'Origin'), ('FREIGHT', 'Freight'), ('DESTINATION', 'Destination')]
VAT_RULES = [('STD_20', 'Std 20'), ('ROAD_14', 'Road 14'), ('EXPORT_0_ART92', 'Export 0 Art92'), ('EXEMPT', 'Exempt')]
BASES = [
    ('CONTAINER', 'Container'), ('WEIGHT', 'Weight'), ('TAXABLE_WEIGHT', 'Taxable Weight'),
    ('VOLUME', 'Volume'), ('FLAT', 'Flat'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='TariffRate',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('reference', models.CharField(max_length=64, unique=True)),
                ('carrier', models.CharField(max_length=128)),
                ('pol', models.CharField(help_text='Port/place of loading code, e.g. MACAS', max_length=16)),
                ('pod', models.CharField(help_text='Port/place of discharge code', max_length=16)),
                ('mode', models.CharField(choices=MODES, max_length=10)),
                ('incoterm', models.CharField(choices=INCOTERMS, max_length=3)),
                ('status', models.CharField(choices=[('ACTIVE', 'Active'), ('DRAFT', 'Draft'), ('ARCHIVED', 'Archived')], default='DRAFT', max_length=10)),
                ('valid_from', models.DateField()),
                ('valid_to', models.DateField()),
                ('transit_days', models.PositiveIntegerField(blank=True, null=True)),
                ('reliability', models.DecimalField(blank=True, decimal_places=2, help_text='On-time score 0-100', max_digits=5, null=True)),
                ('notes', models.TextField(blank=True, default='')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'db_table': 'tariff_rates',
                'ordering': ['id'],
                'indexes': [
                    models.Index(fields=['pol', 'pod', 'mode'], name='tariff_rate_pol_0b6f1e_idx'),
                    models.Index(fields=['status', 'valid_to'], name='tariff_rate_status_5d2c8a_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RateCharge',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('section', models.CharField(choices=SECTIONS, max_length=12)),
                ('name', models.CharField(max_length=128)),
                ('basis', models.CharField(choices=BASES, default='FLAT', max_length=16)),
                ('currency', models.CharField(default='USD', max_length=3)),
                ('vat_rule', models.CharField(choices=VAT_RULES, default='STD_20', max_length=16)),
                ('unit_price', models.DecimalField(decimal_places=4, default=0, max_digits=18)),
                ('price_20dv', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ('price_40dv', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ('price_40hc', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ('price_40rf', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ('min_price', models.DecimalField(blank=True, decimal_places=4, max_digits=18, null=True)),
                ('sort_order', models.PositiveIntegerField(default=0)),
                ('tariff', models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name='charges', to='pricing.tariffrate')),
            ],
            options={
                'db_table': 'tariff_rate_charges',
                'ordering': ['sort_order', 'id'],
            },
        ),
        migrations.CreateModel(
            name='ExchangeRate',
            fields=[
                ('id', models.BigAutoField(primary_key=True, serialize=False)),
                ('as_of_ts', models.DateTimeField()),
                ('currency', models.CharField(max_length=3)),
                ('rate', models.DecimalField(decimal_places=8, max_digits=18)),
                ('source', models.CharField(blank=True, default='', max_length=32)),
            ],
            options={
                'db_table': 'exchange_rates',
                'indexes': [models.Index(fields=['currency', '-as_of_ts'], name='exchange_ra_currenc_7a41c3_idx')],
                'unique_together': {('as_of_ts', 'currency')},
            },
        ),
    ]
