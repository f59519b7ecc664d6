"""Internal constants shared across the library."""

USER_AGENT = "pysightings (python aiohttp)"

INATURALIST_OBSERVATIONS_URL = "https://api.inaturalist.org/v2/observations"
INATURALIST_SPECIES_COUNTS_URL = "https://api.inaturalist.org/v2/observations/species_counts"
INATURALIST_TILES_URL = "https://tiles.inaturalist.org/v2/grid/{z}/{x}/{y}.png"
MAPLIFY_SIGHTINGS_URL = "https://maplify.com/waseak/php/search-all-sightings.php"
WSF_VESSEL_LOCATIONS_URL = "https://www.wsdot.wa.gov/ferries/api/vessels/rest/vessellocations"

# Response projection for the observation search. Only these fields are parsed.
INATURALIST_FIELDSPEC = (
    "(description:!t,geojson:!t,geoprivacy:!t,id:!t,photos:(url:!t),public_positional_accuracy:!t,"
    "taxon:(id:!t,name:!t,preferred_common_name:!t),taxon_geoprivacy:!t,time_observed_at:!t,uri:!t)"
)
INATURALIST_SPECIES_COUNTS_FIELDSPEC = (
    "(taxon:(id:!t,name:!t,parent_id:!t,preferred_common_name:!t,"
    "ancestors:(id:!t,name:!t,parent_id:!t,preferred_common_name:!t)))"
)

# Key under which user-entered observations are kept in the local store.
LOCAL_OBSERVATIONS_KEY = "observations"

# Query parameters whose values must never reach the logs.
SENSITIVE_PARAMS: frozenset[str] = frozenset({"apiaccesscode", "access_code", "api_key", "token"})
