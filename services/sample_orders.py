"""Demo orders shown on the tracking page before any real order exists."""
from schemas.order import OrderOut

_SAMPLE_ORDERS = [
    {
        "order_number": "TSR-105284",
        "placed_on": "2024-09-21T10:30:00+06:00",
        "total_amount": 420,
        "items_count": 3,
        "status": "shipped",
        "payment_method": "Cash on Delivery",
        "estimated_delivery": "2024-09-27T00:00:00+06:00",
        "notes": "Leave with the security guard if no one answers.",
        "shipping_address": {
            "name": "Nadia Rahman",
            "phone": "+8801712345678",
            "address_line1": "House 12, Road 7",
            "address_line2": "Dhanmondi",
            "city": "Dhaka",
            "postal_code": "1205",
        },
        "status_history": [
            {
                "id": "placed",
                "title": "Order Placed",
                "description": "We have received your order and payment method.",
                "date": "2024-09-21T10:30:00+06:00",
                "is_completed": True,
            },
            {
                "id": "processing",
                "title": "Processing",
                "description": "Items are being prepared at the warehouse.",
                "date": "2024-09-22T14:00:00+06:00",
                "is_completed": True,
            },
            {
                "id": "shipped",
                "title": "Shipped",
                "description": "Your package has left the warehouse.",
                "date": "2024-09-24T09:15:00+06:00",
                "is_completed": True,
            },
            {
                "id": "out-for-delivery",
                "title": "Out for Delivery",
                "description": "Courier is on the way to your address.",
                "is_completed": False,
            },
            {
                "id": "delivered",
                "title": "Delivered",
                "description": "Package delivered to your doorstep.",
                "is_completed": False,
            },
        ],
    },
    {
        "order_number": "TSR-208611",
        "placed_on": "2024-08-14T12:05:00+06:00",
        "total_amount": 285,
        "items_count": 2,
        "status": "delivered",
        "payment_method": "bKash",
        "estimated_delivery": "2024-08-18T00:00:00+06:00",
        "notes": "Call before delivery after 5 PM.",
        "shipping_address": {
            "name": "Arman Hossain",
            "phone": "+8801911223344",
            "address_line1": "Flat B2, Building 23",
            "address_line2": "Agrabad Commercial Area",
            "city": "Chattogram",
            "postal_code": "4000",
        },
        "status_history": [
            {
                "id": "placed",
                "title": "Order Placed",
                "description": "We have received your order and payment method.",
                "date": "2024-08-14T12:05:00+06:00",
                "is_completed": True,
            },
            {
                "id": "processing",
                "title": "Processing",
                "description": "Items are being prepared at the warehouse.",
                "date": "2024-08-15T09:20:00+06:00",
                "is_completed": True,
            },
            {
                "id": "shipped",
                "title": "Shipped",
                "description": "Your package has left the warehouse.",
                "date": "2024-08-16T08:45:00+06:00",
                "is_completed": True,
            },
            {
                "id": "out-for-delivery",
                "title": "Out for Delivery",
                "description": "Courier is on the way to your address.",
                "date": "2024-08-17T10:10:00+06:00",
                "is_completed": True,
            },
            {
                "id": "delivered",
                "title": "Delivered",
                "description": "Package delivered to your doorstep.",
                "date": "2024-08-17T16:40:00+06:00",
                "is_completed": True,
            },
        ],
    },
]

SAMPLE_ORDERS = [OrderOut.model_validate(o) for o in _SAMPLE_ORDERS]
