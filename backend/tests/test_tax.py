from decimal import Decimal

import pytest

from core.exceptions import InvalidAmount
from finance.models import Tax, TaxSettings
from finance.tax import TaxConfig, calculate_taxes, load_tax_config, money


class TestCalculateTaxes:
    """Pure tax breakdown."""

    @pytest.mark.parametrize('base', ['0', '0.01', '999.99', '2000', '123456.78'])
    def test_disabled_config_returns_base_as_total(self, base):
        result = calculate_taxes(Decimal(base), TaxConfig(gst_percentage=Decimal('18'), tax_enabled=False))
        assert result.total_amount == Decimal(base)
        assert result.total_tax_amount == 0
        assert result.taxes == []

    def test_gst_on_two_nights(self):
        result = calculate_taxes(Decimal('2000'), TaxConfig(gst_percentage=Decimal('18'), tax_enabled=True))
        assert result.gst_amount == Decimal('360.00')
        assert result.total_amount == Decimal('2360.00')
        assert [t.name for t in result.taxes] == ['GST']

    def test_all_taxes_summed(self):
        config = TaxConfig(
            gst_percentage=Decimal('12'),
            service_tax_percentage=Decimal('5'),
            other_taxes=(('City Levy', Decimal('1.5')), ('Tourism', Decimal('0.5'))),
            tax_enabled=True,
        )
        result = calculate_taxes(Decimal('1000'), config)
        assert result.gst_amount == Decimal('120.00')
        assert result.service_tax_amount == Decimal('50.00')
        assert result.other_tax_amount == Decimal('20.00')
        assert result.total_tax_amount == Decimal('190.00')
        assert result.total_amount == Decimal('1190.00')

    def test_rounds_half_up_to_cents(self):
        result = calculate_taxes(Decimal('0.25'), TaxConfig(gst_percentage=Decimal('18'), tax_enabled=True))
        # 0.045 -> 0.05
        assert result.gst_amount == Decimal('0.05')

    def test_negative_base_rejected(self):
        with pytest.raises(InvalidAmount):
            calculate_taxes(Decimal('-1'), TaxConfig(tax_enabled=True))

    def test_negative_percentage_rejected(self):
        with pytest.raises(InvalidAmount):
            calculate_taxes(Decimal('100'), TaxConfig(gst_percentage=Decimal('-5'), tax_enabled=True))

    def test_money_quantizes(self):
        assert money('10.005') == Decimal('10.01')
        assert money(None) == Decimal('0.00')


@pytest.mark.django_db
class TestLoadTaxConfig:
    def test_unconfigured_is_disabled(self):
        assert load_tax_config().tax_enabled is False

    def test_reads_settings_and_active_taxes(self):
        TaxSettings.objects.create(pk=1, gst_percentage=Decimal('18'), service_tax_percentage=Decimal('2'),
                                   tax_enabled=True)
        Tax.objects.create(name='City Levy', code='CITY', percentage=Decimal('1'))
        Tax.objects.create(name='Old Levy', code='OLD', percentage=Decimal('3'), is_active=False)
        config = load_tax_config()
        assert config.tax_enabled is True
        assert config.gst_percentage == Decimal('18')
        assert [name for name, _ in config.other_taxes] == ['City Levy']


@pytest.mark.django_db
class TestTaxEndpoints:
    def test_calculate_taxes_endpoint(self, admin_client, gst_18):
        resp = admin_client.post('/api/calculate-taxes/', {'base_amount': '2000'}, format='json')
        assert resp.status_code == 200
        assert Decimal(str(resp.json()['total_amount'])) == Decimal('2360')

    def test_tax_settings_update(self, admin_client):
        resp = admin_client.put(
            '/api/tax-settings/', {'gst_percentage': '12', 'service_tax_percentage': '0', 'tax_enabled': True},
            format='json',
        )
        assert resp.status_code == 200
        assert TaxSettings.load().gst_percentage == Decimal('12')

    def test_negative_percentage_is_validation_error(self, admin_client):
        resp = admin_client.put(
            '/api/tax-settings/', {'gst_percentage': '-1', 'service_tax_percentage': '0', 'tax_enabled': True},
            format='json',
        )
        assert resp.status_code == 400
        assert resp.json()['error'] == 'Validation failed'
        assert 'gst_percentage' in resp.json()['details']
