"""PIX "copia e cola" (EMV BR Code) payload builder and parser.

Payloads are sequences of ``ID LEN VALUE`` fields (two-digit id, two-digit
length) terminated by field ``63`` carrying a CRC16-CCITT checksum computed
over everything before it, including the ``6304`` prefix.
"""

import re


PIX_GUI = 'br.gov.bcb.pix'
MAX_MERCHANT_NAME_LENGTH = 25
MAX_MERCHANT_CITY_LENGTH = 15
MAX_REFERENCE_LENGTH = 25
REFERENCE_RE = re.compile(r'[^A-Za-z0-9]')


def format_field(field_id, value):
    value = str(value)
    if len(value) > 99:
        raise ValueError(f"EMV field {field_id} is too long ({len(value)} chars)")
    return f"{field_id}{len(value):02d}{value}"


def crc16_ccitt(payload):
    crc = 0xFFFF
    for char in payload:
        crc ^= ord(char) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ 0x1021) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"


def normalize_amount(amount_display):
    """'45,00' / '45.00' / 45 -> '45.00'."""
    raw = str(amount_display).strip().replace('R$', '').strip()
    if ',' in raw:
        raw = raw.replace('.', '').replace(',', '.')
    value = float(raw)
    if value <= 0:
        raise ValueError('PIX amount must be positive')
    return f"{value:.2f}"


def build_br_code(pix_key, amount_display, merchant_name, merchant_city='SAO PAULO', reference=''):
    if not str(pix_key or '').strip():
        raise ValueError('PIX key is required')
    merchant_account = format_field('00', PIX_GUI) + format_field('01', str(pix_key).strip())
    parts = [
        format_field('00', '01'),
        format_field('26', merchant_account),
        format_field('52', '0000'),
        format_field('53', '986'),
        format_field('54', normalize_amount(amount_display)),
        format_field('58', 'BR'),
        format_field('59', str(merchant_name or '')[:MAX_MERCHANT_NAME_LENGTH]),
        format_field('60', str(merchant_city or '')[:MAX_MERCHANT_CITY_LENGTH]),
    ]
    safe_reference = REFERENCE_RE.sub('', str(reference or ''))[:MAX_REFERENCE_LENGTH]
    if safe_reference:
        parts.append(format_field('62', format_field('05', safe_reference)))
    payload = ''.join(parts) + '6304'
    return payload + crc16_ccitt(payload)


def parse_fields(payload):
    fields = {}
    index = 0
    while index + 4 <= len(payload):
        field_id = payload[index:index + 2]
        length = int(payload[index + 2:index + 4])
        value = payload[index + 4:index + 4 + length]
        if len(value) != length:
            raise ValueError(f"Truncated EMV field {field_id}")
        fields[field_id] = value
        index += 4 + length
    if index != len(payload):
        raise ValueError('Trailing bytes after last EMV field')
    return fields


def amount_from_br_code(payload):
    return float(parse_fields(payload)['54'])
