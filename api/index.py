from mangum import Mangum

from escrow.api import create_app
from escrow.token import InMemoryToken

app = create_app(token=InMemoryToken(), root_path="/api")

handler = Mangum(app)
