from mangum import Mangum

from settlement.api import app

app.root_path = "/api"

handler = Mangum(app)
