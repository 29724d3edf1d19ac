from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class DataField(BaseModel):
    """One flattened leaf of a data schema, as declared in an Offering's inputs/outputs"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    rdf_uri: str = Field(..., alias="rdfUri")


class Money(BaseModel):
    amount: float
    currency: str


class Price(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    pricing_model: str = Field("FREE", alias="pricingModel")
    money: Optional[Money] = None


class LatLng(BaseModel):
    lat: float
    lng: float


class Boundary(BaseModel):
    l1: LatLng
    l2: LatLng


class SpatialExtent(BaseModel):
    city: str = ""
    boundary: Optional[Boundary] = None


class Endpoint(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    uri: str
    endpoint_type: str = Field(..., alias="endpointType")
    access_interface_type: str = Field("EXTERNAL", alias="accessInterfaceType")


class Offering(BaseModel):
    """Marketplace resource descriptor: one endpoint, flat inputs/outputs and commercial metadata"""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    category: str
    license: str = "CREATIVE_COMMONS"
    price: Price = Field(default_factory=Price)
    spatial_extent: SpatialExtent = Field(default_factory=SpatialExtent, alias="spatialExtent")
    input_data: List[DataField] = Field(default_factory=list, alias="inputData")
    output_data: List[DataField] = Field(default_factory=list, alias="outputData")
    endpoints: List[Endpoint] = Field(default_factory=list)
