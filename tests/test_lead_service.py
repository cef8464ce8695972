from __future__ import annotations

import unittest
from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import patch

from sqlalchemy import func, select

from app.errors import AllocationExhaustedError, InvalidPageError, InvalidTransitionError, NotFoundError
from app.models import Lead, LeadStatus, Shipment, TrackingStatus
from app.services.lead_service import (
    convert_to_shipment,
    create_lead,
    delete_lead,
    get_lead,
    get_stats,
    list_leads,
    update_lead,
    update_lead_status,
)
from app.services.tracking_service import get_shipment
from tests.support import add_lead, add_user, as_naive_utc, make_session_factory


class LeadServiceTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session_factory()()
        self.client = add_user(self.db, email='client@example.com')

    def tearDown(self) -> None:
        self.db.close()

    def _shipment_count(self) -> int:
        return self.db.execute(select(func.count()).select_from(Shipment)).scalar_one()


class ConvertToShipmentTests(LeadServiceTestCase):
    def test_conversion_creates_shipment_owned_by_client(self) -> None:
        lead = add_lead(self.db, client_id=self.client.id, status=LeadStatus.QUALIFIED)
        eta = datetime(2024, 5, 1, tzinfo=timezone.utc)

        shipment = convert_to_shipment(
            self.db,
            lead.id,
            carrier='UPS',
            carrier_tracking_number='1Z999',
            estimated_delivery=eta,
        )

        self.assertEqual(shipment.user_id, self.client.id)
        self.assertEqual(shipment.status, TrackingStatus.PENDING)
        self.assertEqual(shipment.carrier, 'UPS')
        self.assertEqual(shipment.carrier_tracking_number, '1Z999')
        self.assertEqual(as_naive_utc(shipment.estimated_delivery), as_naive_utc(eta))
        self.assertEqual(get_lead(self.db, lead.id).status, LeadStatus.CONVERTED)
        self.assertEqual(get_shipment(self.db, shipment.tracking_number).events, [])

    def test_lead_without_client_gives_unowned_shipment(self) -> None:
        lead = add_lead(self.db)
        shipment = convert_to_shipment(self.db, lead.id)
        self.assertIsNone(shipment.user_id)

    def test_second_conversion_is_refused(self) -> None:
        lead = add_lead(self.db, client_id=self.client.id)
        convert_to_shipment(self.db, lead.id)

        with self.assertRaises(InvalidTransitionError):
            convert_to_shipment(self.db, lead.id)

        self.assertEqual(self._shipment_count(), 1)

    def test_already_converted_lead_creates_nothing(self) -> None:
        lead = add_lead(self.db, status=LeadStatus.CONVERTED)

        with self.assertRaises(InvalidTransitionError):
            convert_to_shipment(self.db, lead.id)

        self.assertEqual(self._shipment_count(), 0)

    def test_unknown_lead(self) -> None:
        with self.assertRaises(NotFoundError):
            convert_to_shipment(self.db, 'missing')

    def test_failed_shipment_creation_leaves_lead_open(self) -> None:
        lead = add_lead(self.db, status=LeadStatus.QUALIFIED)
        self.db.commit()

        with patch(
            'app.services.lead_service.create_shipment',
            side_effect=AllocationExhaustedError('exhausted'),
        ):
            with self.assertRaises(AllocationExhaustedError):
                convert_to_shipment(self.db, lead.id)

        self.db.expire_all()
        self.assertEqual(get_lead(self.db, lead.id).status, LeadStatus.QUALIFIED)
        self.assertEqual(self._shipment_count(), 0)


class LeadStatusTests(LeadServiceTestCase):
    def test_status_and_assignee_update(self) -> None:
        admin = add_user(self.db, email='admin@example.com')
        lead = add_lead(self.db)

        updated = update_lead_status(self.db, lead.id, 'contacted', assigned_to=admin.id)

        self.assertEqual(updated.status, LeadStatus.CONTACTED)
        self.assertEqual(updated.assigned_to, admin.id)

    def test_converted_lead_cannot_move_back(self) -> None:
        lead = add_lead(self.db, status=LeadStatus.CONVERTED)
        with self.assertRaises(InvalidTransitionError):
            update_lead_status(self.db, lead.id, LeadStatus.NEW)

    def test_converted_cannot_be_set_directly(self) -> None:
        lead = add_lead(self.db)
        with self.assertRaises(InvalidTransitionError):
            update_lead_status(self.db, lead.id, LeadStatus.CONVERTED)
        self.assertEqual(get_lead(self.db, lead.id).status, LeadStatus.NEW)


class LeadCrudTests(LeadServiceTestCase):
    def test_create_normalizes_fields(self) -> None:
        lead = create_lead(
            self.db,
            name=' Grace ',
            email='grace@example.com',
            phone='+15550101',
            origin_country='us',
            destination_country='fr',
            parcel_type='Electronics',
            weight=Decimal('12.40'),
            client_id=self.client.id,
        )

        self.assertEqual(lead.name, 'Grace')
        self.assertEqual(lead.origin_country, 'US')
        self.assertEqual(lead.destination_country, 'FR')
        self.assertEqual(lead.status, LeadStatus.NEW)
        self.assertEqual(lead.client_id, self.client.id)

    def test_update_ignores_unknown_and_empty_fields(self) -> None:
        lead = add_lead(self.db)

        updated = update_lead(self.db, lead.id, {'phone': '+15550199', 'status': 'converted', 'name': None})

        self.assertEqual(updated.phone, '+15550199')
        self.assertEqual(updated.name, 'Ada Client')
        self.assertEqual(updated.status, LeadStatus.NEW)

    def test_delete(self) -> None:
        lead = add_lead(self.db)
        delete_lead(self.db, lead.id)
        with self.assertRaises(NotFoundError):
            get_lead(self.db, lead.id)

    def test_list_filters_and_paginates(self) -> None:
        for _ in range(3):
            add_lead(self.db, client_id=self.client.id)
        add_lead(self.db, status=LeadStatus.REJECTED)

        mine = list_leads(self.db, client_id=self.client.id, limit=2)
        self.assertEqual(mine.total, 3)
        self.assertEqual(len(mine.items), 2)
        self.assertEqual(mine.total_pages, 2)

        rejected = list_leads(self.db, status=LeadStatus.REJECTED)
        self.assertEqual(rejected.total, 1)

    def test_list_rejects_bad_page(self) -> None:
        with self.assertRaises(InvalidPageError):
            list_leads(self.db, page=0)

    def test_stats(self) -> None:
        add_lead(self.db)
        add_lead(self.db)
        lead = add_lead(self.db, status=LeadStatus.QUALIFIED)
        convert_to_shipment(self.db, lead.id)

        self.assertEqual(get_stats(self.db), {'total_leads': 3, 'new_leads': 2, 'converted_leads': 1})
        self.assertEqual(self.db.execute(select(func.count()).select_from(Lead)).scalar_one(), 3)


if __name__ == '__main__':
    unittest.main()
