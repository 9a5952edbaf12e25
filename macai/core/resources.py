from typing import Any, Optional

HEALTH_TIPS: dict[str, list[str]] = {
    "general": [
        "Drink 8-10 glasses of water daily",
        "Exercise for at least 30 minutes daily",
        "Eat 5 servings of fruits and vegetables daily",
        "Get 7-8 hours of quality sleep",
        "Practice stress management techniques",
        "Avoid smoking and limit alcohol consumption",
    ],
    "preventive": [
        "Wash hands frequently with soap for 20 seconds",
        "Maintain social distancing in crowded places",
        "Get regular health check-ups",
        "Keep vaccinations up to date",
        "Maintain healthy weight",
        "Practice good posture",
    ],
}
DEFAULT_TIP_CATEGORY = "general"

EMERGENCY_NUMBERS: dict[str, str] = {
    "ambulance": "108",
    "emergency": "102",
    "police": "100",
    "fire": "101",
}

HEALTHLINE_NUMBERS: dict[str, str] = {
    "covid19": "1075",
    "mental_health": "9152987821",
    "child_helpline": "1098",
}

NATIONAL_EMERGENCY_SERVICES: list[dict[str, str]] = [
    {
        "name": "National Ambulance Service",
        "phone": "108",
        "type": "ambulance",
        "response_time": "8-12 minutes",
    },
    {
        "name": "Fire & Emergency Services",
        "phone": "101",
        "type": "fire_emergency",
        "response_time": "5-8 minutes",
    },
    {
        "name": "Police Emergency",
        "phone": "100",
        "type": "police",
        "response_time": "5-10 minutes",
    },
]

AYUSHMAN_BHARAT_BENEFITS: list[str] = [
    "Cashless treatment up to ₹5 lakhs",
    "Digital health records",
    "Telemedicine services",
    "Preventive care programs",
]

SERVICE_FEATURES: list[str] = [
    "Symptom analysis",
    "Ayushman Bharat integration",
    "Emergency alert system",
    "Multi-language support ready",
    "Healthcare facility finder",
]

DEFAULT_LATITUDE = 12.9716
DEFAULT_LONGITUDE = 77.5946

# Demo listings used until real facilities are stored. Coordinates are
# offsets from the caller's position.
SAMPLE_FACILITIES: list[dict[str, Any]] = [
    {
        "name": "Government General Hospital",
        "type": "hospital",
        "address": "MG Road, Central District",
        "city": "Healthcare City",
        "state": "Your State",
        "pincode": "123456",
        "offset": (0.0, 0.0),
        "phone": "+91-80-12345678",
        "emergency_phone": "108",
        "email": "info@govhospital.gov.in",
        "website": None,
        "services": ["Emergency Care", "General Medicine", "Surgery", "Pediatrics", "Maternity"],
        "ayushman_empanelled": True,
        "emergency_24x7": True,
        "regular_hours": "24/7",
        "rating_average": 4.2,
        "rating_count": 1250,
        "distance": "2.5 km",
        "estimated_time": "8 minutes",
    },
    {
        "name": "Primary Health Centre - Sector 12",
        "type": "phc",
        "address": "Community Center, Sector 12",
        "city": "Healthcare City",
        "state": "Your State",
        "pincode": "123457",
        "offset": (0.01, 0.01),
        "phone": "+91-80-87654321",
        "emergency_phone": None,
        "email": "phc.sector12@health.gov.in",
        "website": None,
        "services": ["General Medicine", "Vaccination", "Health Check-ups", "Maternal Care"],
        "ayushman_empanelled": True,
        "emergency_24x7": False,
        "regular_hours": "9 AM - 6 PM",
        "rating_average": 4.0,
        "rating_count": 890,
        "distance": "1.8 km",
        "estimated_time": "6 minutes",
    },
    {
        "name": "City Medical Centre & Research Institute",
        "type": "hospital",
        "address": "Medical District, Ring Road",
        "city": "Healthcare City",
        "state": "Your State",
        "pincode": "123458",
        "offset": (0.02, -0.01),
        "phone": "+91-80-11223344",
        "emergency_phone": "+91-80-11223355",
        "email": None,
        "website": "www.citymedical.com",
        "services": ["Emergency Care", "Cardiology", "Neurology", "Oncology", "ICU", "Trauma Center"],
        "ayushman_empanelled": True,
        "emergency_24x7": True,
        "regular_hours": "24/7",
        "rating_average": 4.5,
        "rating_count": 2100,
        "distance": "3.2 km",
        "estimated_time": "12 minutes",
    },
    {
        "name": "Community Health Center - Rural",
        "type": "chc",
        "address": "Village Road, Rural Area",
        "city": "Rural District",
        "state": "Your State",
        "pincode": "123459",
        "offset": (-0.01, 0.02),
        "phone": "+91-80-99887766",
        "emergency_phone": None,
        "email": None,
        "website": None,
        "services": ["General Medicine", "Basic Surgery", "Delivery", "Emergency Care"],
        "ayushman_empanelled": True,
        "emergency_24x7": True,
        "regular_hours": "24/7",
        "rating_average": 3.8,
        "rating_count": 450,
        "distance": "5.1 km",
        "estimated_time": "18 minutes",
    },
]


def tips_for_category(category: Optional[str]) -> tuple[str, list[str]]:
    key = (category or "").strip().lower()
    if key in HEALTH_TIPS:
        return key, HEALTH_TIPS[key]
    return DEFAULT_TIP_CATEGORY, HEALTH_TIPS[DEFAULT_TIP_CATEGORY]
