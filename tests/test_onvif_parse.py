"""
Unit tests for SOAP response parsing.
"""
import pytest

from onvif_errors import MalformedResponse, MissingField, ParseError
from onvif_parse import (
    DeviceInformation, local_name, parse_device_information, parse_profiles, parse_response,
    parse_services, parse_stream_uri,
)
from onvif_request import RequestType

SERVICES = '''
<tds:GetServicesResponse>
    <tds:Service>
        <tds:Namespace>http://www.onvif.org/ver10/device/wsdl</tds:Namespace>
        <tds:XAddr>http://192.168.1.20/onvif/device_service</tds:XAddr>
    </tds:Service>
    <tds:Service>
        <tds:Namespace>http://www.onvif.org/ver20/media/wsdl</tds:Namespace>
        <tds:XAddr>http://192.168.1.20:8080/onvif/Media2?x=1</tds:XAddr>
    </tds:Service>
    <tds:Service>
        <tds:Namespace>http://www.onvif.org/ver20/ptz/wsdl</tds:Namespace>
        <tds:XAddr>http://192.168.1.20/onvif/ptz_service</tds:XAddr>
    </tds:Service>
    <tds:Service>
        <tds:Namespace>http://www.onvif.org/ver10/events/wsdl</tds:Namespace>
    </tds:Service>
</tds:GetServicesResponse>
'''


class TestLocalName:
    def test_strips_namespace(self):
        assert local_name('{http://www.onvif.org/ver10/schema}Uri') == 'Uri'

    def test_plain_tag(self):
        assert local_name('Uri') == 'Uri'

    def test_non_string_tag(self):
        assert local_name(None) == ''


class TestParseServices:
    def test_keeps_path_only(self, soap_envelope):
        services = parse_services(soap_envelope(SERVICES))
        assert services == {
            'http://www.onvif.org/ver10/device/wsdl': '/onvif/device_service',
            'http://www.onvif.org/ver20/media/wsdl': '/onvif/Media2',
            'http://www.onvif.org/ver20/ptz/wsdl': '/onvif/ptz_service',
        }

    def test_empty_response(self, soap_envelope):
        assert parse_services(soap_envelope('<tds:GetServicesResponse/>')) == {}

    def test_unprefixed_tags(self):
        body = ('<Envelope><Body><GetServicesResponse><Service>'
                '<Namespace>http://www.onvif.org/ver10/device/wsdl</Namespace>'
                '<XAddr>http://cam/onvif/dev</XAddr>'
                '</Service></GetServicesResponse></Body></Envelope>')
        assert parse_services(body) == {'http://www.onvif.org/ver10/device/wsdl': '/onvif/dev'}


class TestParseDeviceInformation:
    def test_all_fields(self, soap_envelope):
        info = parse_device_information(soap_envelope(
            '<tds:GetDeviceInformationResponse>'
            '<tds:Manufacturer>Acme</tds:Manufacturer>'
            '<tds:Model>C100</tds:Model>'
            '<tds:FirmwareVersion>2.1</tds:FirmwareVersion>'
            '<tds:SerialNumber>SN42</tds:SerialNumber>'
            '<tds:HardwareId>HW7</tds:HardwareId>'
            '</tds:GetDeviceInformationResponse>'
        ))
        assert info == DeviceInformation('Acme', 'C100', '2.1', 'SN42', 'HW7')
        assert 'Manufacturer: Acme' in str(info)

    def test_missing_fields_are_none(self, soap_envelope):
        info = parse_device_information(soap_envelope(
            '<tds:GetDeviceInformationResponse><tds:Model>C100</tds:Model>'
            '<tds:SerialNumber></tds:SerialNumber></tds:GetDeviceInformationResponse>'
        ))
        assert info.model == 'C100'
        assert info.manufacturer is None
        assert info.serial_number is None

    def test_other_document_is_missing_field(self, soap_envelope):
        with pytest.raises(MissingField) as exc_info:
            parse_device_information(soap_envelope('<tds:GetServicesResponse/>'))
        assert exc_info.value.field == 'GetDeviceInformationResponse'


class TestParseProfiles:
    def test_no_profiles_is_empty_list(self, soap_envelope):
        assert parse_profiles(soap_envelope('<tr2:GetProfilesResponse/>')) == []

    def test_profiles_in_document_order(self, soap_envelope):
        profiles = parse_profiles(soap_envelope(
            '<tr2:GetProfilesResponse>'
            '<tr2:Profiles token="Profile_2"><tr2:Name>Sub</tr2:Name></tr2:Profiles>'
            '<tr2:Profiles token="Profile_1"><tr2:Name>Main</tr2:Name>'
            '<tr2:Configurations><tr2:VideoEncoder token="enc">'
            '<tt:Name>Encoder</tt:Name><tt:Encoding>H265</tt:Encoding>'
            '<tt:Resolution><tt:Width>2560</tt:Width><tt:Height>1440</tt:Height></tt:Resolution>'
            '</tr2:VideoEncoder></tr2:Configurations>'
            '</tr2:Profiles>'
            '</tr2:GetProfilesResponse>'
        ))
        assert [p.token for p in profiles] == ['Profile_2', 'Profile_1']
        # Nested configuration names must not leak into the profile name
        assert profiles[1].name == 'Main'
        assert profiles[1].encoding == 'H265'
        assert (profiles[1].width, profiles[1].height) == (2560, 1440)
        assert profiles[0].encoding is None

    def test_media1_layout(self):
        body = ('<s:Envelope xmlns:s="http://www.w3.org/2003/05/soap-envelope"'
                ' xmlns:trt="http://www.onvif.org/ver10/media/wsdl"'
                ' xmlns:tt="http://www.onvif.org/ver10/schema"><s:Body>'
                '<trt:GetProfilesResponse><trt:Profiles token="p0">'
                '<tt:Name>mainStream</tt:Name>'
                '<tt:VideoEncoderConfiguration token="v0"><tt:Encoding>H264</tt:Encoding>'
                '</tt:VideoEncoderConfiguration>'
                '</trt:Profiles></trt:GetProfilesResponse></s:Body></s:Envelope>')
        profile, = parse_profiles(body)
        assert profile.token == 'p0'
        assert profile.name == 'mainStream'
        assert profile.encoding == 'H264'

    def test_profile_without_token_is_not_usable(self, soap_envelope):
        profile, = parse_profiles(soap_envelope(
            '<tr2:GetProfilesResponse><tr2:Profiles><tr2:Name>x</tr2:Name></tr2:Profiles>'
            '</tr2:GetProfilesResponse>'
        ))
        assert profile.token == ''
        assert not profile.usable


class TestParseStreamUri:
    def test_uri(self, soap_envelope):
        uri = parse_stream_uri(soap_envelope(
            '<tr2:GetStreamUriResponse><tr2:Uri> rtsp://10.0.0.5:554/stream1 </tr2:Uri>'
            '</tr2:GetStreamUriResponse>'
        ))
        assert uri == 'rtsp://10.0.0.5:554/stream1'

    def test_media1_media_uri(self, soap_envelope):
        uri = parse_stream_uri(soap_envelope(
            '<tr2:GetStreamUriResponse><tr2:MediaUri><tt:Uri>rtsp://cam/live</tt:Uri>'
            '<tt:Timeout>PT0S</tt:Timeout></tr2:MediaUri></tr2:GetStreamUriResponse>'
        ))
        assert uri == 'rtsp://cam/live'

    @pytest.mark.parametrize('body', [
        '<tr2:GetStreamUriResponse/>',
        '<tr2:GetStreamUriResponse><tr2:Uri>  </tr2:Uri></tr2:GetStreamUriResponse>',
    ])
    def test_missing_uri(self, soap_envelope, body):
        with pytest.raises(MissingField):
            parse_stream_uri(soap_envelope(body))


class TestParseResponse:
    @pytest.mark.parametrize('kind', list(RequestType))
    def test_malformed_xml(self, kind):
        with pytest.raises(MalformedResponse):
            parse_response(kind, '<Envelope><Body>')

    def test_parse_errors_share_a_base(self):
        assert issubclass(MalformedResponse, ParseError)
        assert issubclass(MissingField, ParseError)

    def test_dispatch(self, soap_envelope):
        body = soap_envelope('<tr2:GetStreamUriResponse><tr2:Uri>rtsp://x/y</tr2:Uri></tr2:GetStreamUriResponse>')
        assert parse_response(RequestType.GET_STREAM_URI, body) == 'rtsp://x/y'
