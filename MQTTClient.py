'''
Created on 18.11.2023

@author: irimi
'''

import paho.mqtt.client as mqtt
import logging
import time
import socket
import ssl
import json

"""
QOS: 0 => fire and forget A -> B
QOS: 1 => at leat one - msg will be send
          (A) since publish_ack (B) is not received
QOS: 3 => exactly once :
          Publish (A) -> PubRec (B) -> PUBREL (A) -> PUBCOM (B) -> A
"""
QOS = 0

""" True: MSG is stored at Broker and keeps available for new subscribes,
    False: new publish required after subscribes
"""
RETAIN = True

HASS_DISCOVERY_PREFIX = 'homeassistant'

HASS_TYPE_SENSOR = "sensor"

HASS_CONFIG_DEVICE_CLASS = "device_class"
HASS_CONFIG_ICON = "icon"
HASS_CONFIG_VALUE_TEMPLATE = "value_template"
HASS_CONFIG_UNIT = "unit_of_measurement"
HASS_CONFIG_STATECLASS = "state_class"

DEBOUNCE_THRESHOLD = 2

MQTT_CLIENT_ID = 'CO2Sensor'

CLIENT_TOPICS = {'CO2': HASS_TYPE_SENSOR,
                 'Temperature': HASS_TYPE_SENSOR}

HASS_CONFIGS = {'CO2': {HASS_CONFIG_ICON: "mdi:molecule-co2",
                        HASS_CONFIG_DEVICE_CLASS: "carbon_dioxide",
                        HASS_CONFIG_VALUE_TEMPLATE: "{{ value_json.carbon_dioxide  }}",
                        HASS_CONFIG_UNIT: "ppm",
                        HASS_CONFIG_STATECLASS: "measurement"
                        },
                'Temperature': {HASS_CONFIG_ICON: "mdi:temperature-celsius",
                                HASS_CONFIG_DEVICE_CLASS: "temperature",
                                HASS_CONFIG_VALUE_TEMPLATE: "{{ value_json.temperature  }}",
                                HASS_CONFIG_UNIT: "°C",
                                HASS_CONFIG_STATECLASS: "measurement"
                                }
                }


class ReporterError(Exception):
    """ measurement could not be reported """


def encode_json(value) -> str:
    return json.dumps(value)


class MQTTReporter (mqtt.Client):
    """ reports measurements to a MQTT broker with HASS discovery support """

    def __init__(self, cfg, version="", clientId=MQTT_CLIENT_ID) -> None:
        super().__init__(mqtt.CallbackAPIVersion.VERSION2, clientId)

        self.cfg = cfg
        self.clientId = clientId
        self.version = version
        self._disconnectRQ = False
        self._disconnectCnt = 0
        self._hostname = self._getHostTopicId()
        self.baseTopic = f"{clientId}/{self._hostname}"
        self._ONLINE_STATE = f"{self.baseTopic}/online"

        self.TopicValues = dict(zip(CLIENT_TOPICS.keys(), [0] * len(CLIENT_TOPICS)))
        self.TopicConfigs = dict()

        self._avTopics = dict()
        self._stTopics = dict()
        self._hassTopics = dict()

        for tp in CLIENT_TOPICS:
            self._setupTopic(tp, CLIENT_TOPICS[tp])
        self._setupHassTopics(self._deviceInfo())

    def _deviceInfo(self) -> dict:
        return {
            "identifiers": [f"{self.clientId}_{self._hostname}"],
            "manufacturer": "TFA Dostmann",
            "model": self.cfg.get("HW", "AIRCO2NTROL"),
            "sw_version": self.version,
            "name": f"{self.clientId}.{self._hostname}"
        }

    def _setupHassTopics(self, devId: dict):
        """
        setup all HASS discovery configs
        """
        for tp in CLIENT_TOPICS:
            json_attr = f"{self.baseTopic}/{tp}"
            config_tp = {
                "device": devId,
                "availability_topic": self._avTopics[tp],
                "json_attributes_topic": json_attr,
                "unique_id": json_attr,
                "state_topic": self._stTopics[tp],
                "name": f"{self.clientId}.{self._hostname}.{tp}"
            }
            config_tp.update(HASS_CONFIGS[tp])
            self.TopicConfigs[tp] = config_tp

    def _setupTopic(self, tp: str, deviceclass: str):
        self._avTopics[tp] = f"{self.baseTopic}/{tp}/available"
        self._stTopics[tp] = f"{self.baseTopic}/{tp}/state"
        # hassTopic pattern :<discovery_prefix>/<component>/[<node_id>/]<object_id>/config
        self._hassTopics[tp] = f"{HASS_DISCOVERY_PREFIX}/{deviceclass}/{self._hostname}/{tp}/config"

    def _getHostTopicId(self):
        """
        defines the node_id in hass discovery topic
        """
        return socket.gethostname()

    def on_connect(self, _client, _userdata, _flags, reason_code, _properties=None):
        logging.debug(f"on_connect(): {reason_code}")
        if not reason_code.is_failure:
            self.publish_hass()
            self.publish_avail_topics()
            self.publish(topic=self._ONLINE_STATE, payload=True, qos=QOS, retain=RETAIN)
        else:
            logging.error(f"MQTT broker refused connection: {reason_code}")
            self._disconnectRQ = True

    def on_disconnect(self, _client, _userdata, _flags, reason_code, _properties=None):
        """
        on_disconnect by external event
        """
        if reason_code.is_failure and not self._disconnectRQ:
            logging.error(f"MQTT broker was disconnected: {reason_code}")
            self._disconnectCnt += 1
            if self._disconnectCnt >= DEBOUNCE_THRESHOLD:
                logging.info(f"disconnect debounce cnt = {self._disconnectCnt} ")
                logging.error("connection broken")
                self._disconnectRQ = True
        else:
            logging.debug(f"client disconnected: {reason_code}")

    def publish_avail_topics(self, avail=True):
        """ publish all available topics """
        for t in self._avTopics:
            self.publish_avail(self._avTopics[t], avail)

    def publish_avail(self, topic, avail=True):
        """ publish available topic """
        payload = "online" if avail else "offline"
        self.publish(topic=topic, payload=payload, qos=QOS, retain=RETAIN)
        logging.debug(f"publish avail:{topic}:{payload}")

    def publish_state_topics(self):
        """ publish all state topics """
        for t in self._stTopics:
            val = HASS_CONFIGS[t][HASS_CONFIG_DEVICE_CLASS]
            self.publish_state(self._stTopics[t], encode_json({val: self.TopicValues[t]}))

    def publish_state(self, topic, payload):
        """ publish state topic """
        self.publish(topic=topic, payload=payload, qos=QOS, retain=RETAIN)
        logging.debug(f"publish state:{topic}:{payload}")

    def publish_hass(self):
        """
        publish all homeassistant discovery topics
        <discovery_prefix>/<component>/[<node_id>/]<object_id>/config
        https://www.home-assistant.io/integrations/mqtt#mqtt-discovery
        """
        logging.debug("publishing HASS discoveries")
        for cfg in self.TopicConfigs:
            payload = encode_json(self.TopicConfigs[cfg])
            topic = self._hassTopics[cfg]
            logging.debug(f"publish hass:{topic}:{payload}")
            self.publish(topic, payload=payload, retain=True)

    def open(self):
        """
        connect to the MQTT broker
        """
        broker = self.cfg.MQTTBroker
        logging.info(f'Starting up MQTT Service {self.clientId}')
        try:
            if broker.username:
                self.username_pw_set(broker.username, broker.password)
            # client certificate needed ?
            if broker.clientcertfile and broker.clientkeyfile:
                self.tls_set(certfile=broker.clientcertfile,
                             keyfile=broker.clientkeyfile,
                             cert_reqs=ssl.CERT_REQUIRED)
            res = self.connect(broker.host, int(broker.port))
        except (OSError, ValueError) as e:
            raise ReporterError(f"connection to MQTT Broker {broker.host} has failed: {e}") from e
        logging.debug(f"MQTT host connection result: {res}")
        if res != mqtt.MQTT_ERR_SUCCESS:
            raise ReporterError(f"Broker connection failed due to {mqtt.error_string(res)}")
        self.loop_start()
        time.sleep(1)
        if self._disconnectRQ:  # due to on_connect with error
            self.loop_stop()
            raise ReporterError(f"connection to MQTT Broker {broker.host} refused")

    def report(self, measurement):
        if self._disconnectRQ:
            raise ReporterError("MQTT broker connection is down")
        self.TopicValues["CO2"] = measurement.co2
        self.TopicValues["Temperature"] = measurement.temperature
        self.publish_state_topics()

    def close(self):
        """
        clean up everything when keyboard CTRL-C or daemon kill request occurs
        """
        logging.info(f"MQTT client {self.clientId} down")
        self._disconnectRQ = True
        self.publish_avail_topics(avail=False)
        self.publish(self._ONLINE_STATE, False, qos=QOS, retain=RETAIN)
        self.disconnect()
        self.loop_stop()
