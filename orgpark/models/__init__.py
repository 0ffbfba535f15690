# OrgPark — Database Models
# Import all models here for SQLAlchemy discovery

from orgpark.models.organization import Organization   # noqa
from orgpark.models.parking_lot import ParkingLot      # noqa
from orgpark.models.user import User                   # noqa
from orgpark.models.watchman import Watchman           # noqa
from orgpark.models.booking import Booking             # noqa
from orgpark.models.payment import Payment             # noqa
